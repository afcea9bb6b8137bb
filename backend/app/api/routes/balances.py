"""
Net balance routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.api.dependencies import get_balance_cache, get_fx_resolver
from app.schemas.balance import BalancesResponse, MoneySchema, NetBalanceResponse
from app.services.fx_service import FxRateResolver
from app.services.ledger_service import BalanceCache, compute_balances, get_trip

router = APIRouter(prefix="/balances", tags=["balances"])


@router.get("/{trip_id}", response_model=BalancesResponse)
def get_balances(
    trip_id: int,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Get each participant's net balance in the trip's base currency."""
    trip = get_trip(trip_id, db)
    result = compute_balances(trip_id, db, resolver=resolver, cache=cache)
    return BalancesResponse(
        trip_id=trip_id,
        base_currency=trip.base_currency,
        balances=[
            NetBalanceResponse(participant_id=b.participant_id, balance=MoneySchema.from_money(b.amount))
            for b in result.balances
        ],
        degraded_expense_ids=result.degraded_expense_ids
    )
