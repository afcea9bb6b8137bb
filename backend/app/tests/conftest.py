"""
Shared fixtures: in-memory database, fake FX source and a test client.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FX_API_KEY"] = ""

import pytest
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.dependencies import get_balance_cache, get_fx_resolver
from app.db.session import get_db, init_db
from app.main import app
from app.models.trip import Trip, TripParticipant
from app.services.fx_service import FxFetchError, FxRateResolver, RateCache
from app.services.ledger_service import BalanceCache


class FakeFetcher:
    """Stands in for ExchangeRateApiClient; records every call."""

    def __init__(self, rates=None):
        self.rates = dict(rates or {})
        self.calls = []

    def fetch_rate(self, from_currency, to_currency, target_date):
        self.calls.append((from_currency, to_currency, target_date))
        if (from_currency, to_currency) not in self.rates:
            raise FxFetchError(f"no rate for {from_currency}->{to_currency}")
        return self.rates[(from_currency, to_currency)]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fetcher():
    return FakeFetcher({
        ("USD", "EUR"): Decimal("0.9"),
        ("JPY", "EUR"): Decimal("0.0061234567"),
    })


@pytest.fixture
def resolver(fetcher):
    return FxRateResolver(fetcher=fetcher, cache=RateCache(ttl_seconds=3600))


@pytest.fixture
def cache():
    return BalanceCache()


@pytest.fixture
def trip(db):
    """A 10-day EUR trip with three full-time participants."""
    trip = Trip(
        name="Lisbon",
        start_date=date(2025, 6, 1),
        end_date=date(2025, 6, 10),
        base_currency="EUR"
    )
    db.add(trip)
    db.flush()
    db.add_all([TripParticipant(trip_id=trip.id, user_id=100 + i) for i in range(3)])
    db.commit()
    db.refresh(trip)
    return trip


@pytest.fixture
def participants(db, trip):
    return db.query(TripParticipant).filter(
        TripParticipant.trip_id == trip.id
    ).order_by(TripParticipant.id).all()


@pytest.fixture
def client(session_factory, resolver, cache):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fx_resolver] = lambda: resolver
    app.dependency_overrides[get_balance_cache] = lambda: cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
