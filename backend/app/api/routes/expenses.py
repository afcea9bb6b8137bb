"""
Expense management routes.
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from typing import List
from app.db.session import get_db
from app.api.dependencies import get_balance_cache, get_fx_resolver
from app.schemas.expense import ExpenseCreate, ExpenseResponse, ExpenseUpdate
from app.services import expense_service
from app.services.fx_service import FxRateResolver
from app.services.ledger_service import BalanceCache

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("/{trip_id}", response_model=List[ExpenseResponse])
def list_expenses(
    trip_id: int,
    db: Session = Depends(get_db)
):
    """Get all expenses of a trip, oldest first."""
    return expense_service.list_expenses(trip_id, db)


@router.get("/{trip_id}/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    trip_id: int,
    expense_id: int,
    db: Session = Depends(get_db)
):
    """Get a single expense with its shares."""
    return expense_service.get_expense(trip_id, expense_id, db)


@router.post("/{trip_id}", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    trip_id: int,
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Create an expense; shares are computed and validated before anything is stored."""
    return expense_service.create_expense(
        trip_id=trip_id,
        payer_id=expense_data.payer_id,
        expense_date=expense_data.date,
        amount=expense_data.amount,
        currency=expense_data.currency,
        rule=expense_data.split.to_rule(),
        participant_ids=expense_data.split.participants(),
        db=db,
        description=expense_data.description,
        category=expense_data.category,
        resolver=resolver,
        cache=cache
    )


@router.put("/{trip_id}/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    trip_id: int,
    expense_id: int,
    expense_data: ExpenseUpdate,
    db: Session = Depends(get_db),
    resolver: FxRateResolver = Depends(get_fx_resolver),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Replace an expense and its split (full edit)."""
    return expense_service.update_expense(
        trip_id=trip_id,
        expense_id=expense_id,
        payer_id=expense_data.payer_id,
        expense_date=expense_data.date,
        amount=expense_data.amount,
        currency=expense_data.currency,
        rule=expense_data.split.to_rule(),
        participant_ids=expense_data.split.participants(),
        db=db,
        description=expense_data.description,
        category=expense_data.category,
        resolver=resolver,
        cache=cache
    )


@router.delete("/{trip_id}/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    trip_id: int,
    expense_id: int,
    db: Session = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache)
):
    """Delete an expense and its shares."""
    expense_service.delete_expense(trip_id, expense_id, db, cache=cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
