"""
Settlement routes: proposals, recorded plans and payment confirmation.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from app.db.session import get_db
from app.api.dependencies import get_balance_cache, get_fx_resolver
from app.models.settlement import Settlement, SettlementStatus
from app.schemas.balance import MoneySchema
from app.schemas.settlement import (
    MarkSettledRequest, SettlementProposalResponse, SettlementResponse, TransferResponse
)
from app.services import settlement_service
from app.services.fx_service import FxRateResolver
from app.services.ledger_service import BalanceCache, compute_balances, get_trip

router = APIRouter(prefix="/settlement", tags=["settlement"])


def to_settlement_response(settlement: Settlement) -> SettlementResponse:
    return SettlementResponse(
        id=settlement.id,
        trip_id=settlement.trip_id,
        from_participant_id=settlement.from_participant_id,
        to_participant_id=settlement.to_participant_id,
        amount=MoneySchema(amount=settlement.amount, currency=settlement.currency),
        status=settlement.status,
        settled_at=settlement.settled_at,
        settled_by=settlement.settled_by,
        note=settlement.note,
        created_at=settlement.created_at,
        updated_at=settlement.updated_at
    )


@router.get("/{trip_id}/proposal", response_model=SettlementProposalResponse)
def get_settlement_proposal(
    trip_id: int,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Compute who should pay whom right now. Nothing is stored."""
    trip = get_trip(trip_id, db)
    result = compute_balances(trip_id, db, resolver=resolver, cache=cache)
    transfers = settlement_service.optimize(result.balances)
    return SettlementProposalResponse(
        trip_id=trip_id,
        base_currency=trip.base_currency,
        transfers=[
            TransferResponse(
                from_participant_id=t.from_participant_id,
                to_participant_id=t.to_participant_id,
                amount=MoneySchema.from_money(t.amount)
            )
            for t in transfers
        ],
        degraded_expense_ids=result.degraded_expense_ids,
        summary=settlement_service.summarize_settlement(result, transfers)
    )


@router.post("/{trip_id}/record", response_model=List[SettlementResponse])
def record_settlements(
    trip_id: int,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Store the current proposal as pending settlements, replacing older pending ones."""
    rows = settlement_service.record_settlements(trip_id, db, resolver=resolver, cache=cache)
    return [to_settlement_response(row) for row in rows]


@router.get("/{trip_id}", response_model=List[SettlementResponse])
def list_settlements(
    trip_id: int,
    status: Optional[SettlementStatus] = None,
    db: Session = Depends(get_db)
):
    """Get recorded settlements for a trip, optionally filtered by status."""
    rows = settlement_service.list_settlements(trip_id, db, status=status)
    return [to_settlement_response(row) for row in rows]


@router.post("/records/{settlement_id}/settle", response_model=SettlementResponse)
def mark_settlement_settled(
    settlement_id: int,
    request: MarkSettledRequest,
    db: Session = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Confirm a settlement was paid. Repeating the call is a no-op."""
    settlement = settlement_service.mark_settled(
        settlement_id, request.settled_by, db, note=request.note, cache=cache
    )
    return to_settlement_response(settlement)
