"""
Foreign exchange service for currency conversion.

Rates are looked up in three tiers: an in-memory ``RateCache`` with a TTL,
the persisted ``fx_rates`` table, and finally ExchangeRate-API. A failure at
the last tier is reported as ``RateUnavailable`` so callers can degrade
instead of aborting.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Tuple
import httpx
import logging
import threading
from app.core.config import settings
from app.core.exceptions import RateUnavailable
from app.core.money import normalize_currency
from app.models.exchange_rate import FxRate

logger = logging.getLogger(__name__)

RateKey = Tuple[str, str, date]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FxFetchError(ValueError):
    """Raised by the remote client when a rate cannot be fetched."""
    pass


@dataclass
class _CacheEntry:
    key: RateKey
    rate: Decimal
    fetched_at: datetime


class RateCache:
    """
    In-memory rate cache keyed by (from, to, date) with a TTL and injectable clock.

    Shared by request handlers running in the threadpool, so every access
    holds the lock.
    """

    def __init__(self, ttl_seconds: int = 3600, clock: Callable[[], datetime] = utc_now):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: Dict[RateKey, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: RateKey) -> Optional[Decimal]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.fetched_at >= self._ttl:
                del self._entries[key]
                return None
            return entry.rate

    def put(self, key: RateKey, rate: Decimal) -> None:
        with self._lock:
            self._entries[key] = _CacheEntry(key=key, rate=rate, fetched_at=self._clock())

    def invalidate(self, key: RateKey) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ExchangeRateApiClient:
    """
    Fetch rates from ExchangeRate-API v6.

    Uses /latest/{currency} for today's date and /history/{currency}/{year}/{month}/{day}
    for historical dates. Responses carry ``conversion_rates`` with the requested
    currency as base, so the rate we want is ``conversion_rates[to_currency]``.
    """

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None,
        today: Callable[[], date] = date.today
    ):
        self.api_key = settings.FX_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.FX_API_URL).rstrip("/")
        self.timeout = timeout or settings.FX_TIMEOUT_SECONDS
        self._transport = transport
        self._today = today

    def _url_for(self, from_currency: str, target_date: date) -> str:
        if target_date == self._today():
            return f"{self.base_url}/{self.api_key}/latest/{from_currency}"
        return (
            f"{self.base_url}/{self.api_key}/history/{from_currency}/"
            f"{target_date.year}/{target_date.month}/{target_date.day}"
        )

    def fetch_rate(self, from_currency: str, to_currency: str, target_date: date) -> Decimal:
        if not self.api_key:
            raise FxFetchError("FX_API_KEY is not configured")

        url = self._url_for(from_currency, target_date)
        logger.info(f"Fetching exchange rate {from_currency}->{to_currency} for {target_date}")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise FxFetchError(f"ExchangeRate-API HTTP error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            # Network errors and timeouts
            raise FxFetchError(f"ExchangeRate-API network error: {e}") from e
        except ValueError as e:
            raise FxFetchError("ExchangeRate-API returned a non-JSON body") from e

        if settings.DEBUG:
            logger.debug(f"ExchangeRate-API response: {data}")

        if data.get("result") != "success":
            raise FxFetchError(f"ExchangeRate-API error: {data.get('error-type', 'Unknown error')}")

        value = (data.get("conversion_rates") or {}).get(to_currency)
        if value is None:
            raise FxFetchError(f"{to_currency} rate not available in API response")
        try:
            rate = Decimal(str(value))
        except InvalidOperation as e:
            raise FxFetchError(f"Malformed rate: {value!r}") from e
        if rate <= 0:
            raise FxFetchError(f"Invalid exchange rate: {rate}")
        return rate


class FxRateResolver:
    """Resolve (from, to, date) to a rate: cache -> fx_rates table -> remote fetch."""

    def __init__(self, fetcher: ExchangeRateApiClient = None, cache: RateCache = None):
        self.fetcher = fetcher if fetcher is not None else ExchangeRateApiClient()
        self.cache = cache if cache is not None else RateCache(settings.FX_CACHE_TTL_SECONDS)

    def resolve(self, from_currency: str, to_currency: str, on_date: date, db: Session = None) -> Decimal:
        """Return the rate for 1 unit of from_currency in to_currency, or raise RateUnavailable."""
        from_currency = normalize_currency(from_currency)
        to_currency = normalize_currency(to_currency)
        if from_currency == to_currency:
            return Decimal(1)

        key = (from_currency, to_currency, on_date)
        rate = self.cache.get(key)
        if rate is not None:
            return rate

        if db is not None:
            stored = db.query(FxRate).filter(
                FxRate.from_currency == from_currency,
                FxRate.to_currency == to_currency,
                FxRate.date == on_date
            ).first()
            if stored:
                rate = Decimal(stored.rate)
                self.cache.put(key, rate)
                return rate

        try:
            rate = self.fetcher.fetch_rate(from_currency, to_currency, on_date)
        except FxFetchError as e:
            logger.warning(f"Rate unavailable for {from_currency}->{to_currency} on {on_date}: {e}")
            raise RateUnavailable(from_currency, to_currency, on_date, str(e)) from e

        self.cache.put(key, rate)
        if db is not None:
            self._store(db, from_currency, to_currency, on_date, rate)
        logger.info(f"Resolved rate {from_currency}->{to_currency} on {on_date}: {rate}")
        return rate

    def _store(self, db: Session, from_currency: str, to_currency: str, on_date: date, rate: Decimal):
        db.add(FxRate(from_currency=from_currency, to_currency=to_currency, date=on_date, rate=rate))
        try:
            db.commit()
        except IntegrityError:
            # Another request stored the same pair/date first; its value wins
            db.rollback()
            logger.debug(f"Rate {from_currency}->{to_currency} on {on_date} already stored")


def inverse_rate(rate: Decimal) -> Decimal:
    """Rate for the reverse direction (EUR->USD 1.12 gives USD->EUR 1/1.12)."""
    if rate == 0:
        raise ValueError("Cannot calculate inverse of zero rate")
    return Decimal(1) / Decimal(rate)
