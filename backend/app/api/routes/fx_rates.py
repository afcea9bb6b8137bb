"""
Foreign exchange rates routes.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from datetime import date
from app.db.session import get_db
from app.api.dependencies import get_fx_resolver
from app.core.money import normalize_currency
from app.schemas.exchange_rate import ExchangeRateResponse
from app.services.fx_service import FxRateResolver

router = APIRouter(prefix="/fx-rates", tags=["fx-rates"])


@router.get("/{rate_date}", response_model=ExchangeRateResponse)
def get_exchange_rate_for_date(
    rate_date: date,
    from_currency: str,
    to_currency: str,
    force_refresh: bool = False,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver)
):
    """Get the rate for 1 unit of from_currency in to_currency on a date.

    Args:
        force_refresh: If True, drop the in-memory cache entry before resolving.
    """
    try:
        from_code = normalize_currency(from_currency)
        to_code = normalize_currency(to_currency)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if force_refresh:
        resolver.cache.invalidate((from_code, to_code, rate_date))

    # RateUnavailable is mapped to 503 by the app's exception handlers
    rate = resolver.resolve(from_code, to_code, rate_date, db=db)
    return ExchangeRateResponse(
        from_currency=from_code,
        to_currency=to_code,
        date=rate_date,
        rate=rate
    )
