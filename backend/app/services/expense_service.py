"""
Expense service for expense-related business logic.
"""
from sqlalchemy.orm import Session
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
import logging
from app.core.config import settings
from app.core.exceptions import NotFound, RateUnavailable
from app.core.money import Money
from app.db.session import unit_of_work
from app.models.expense import Expense, ExpenseShare
from app.models.trip import Trip, TripParticipant
from app.services.ledger_service import BalanceCache, balance_cache, bump_ledger_version, get_trip
from app.services.share_calculator import (
    ComputedShare, ParticipantSpan, SplitRule, TripSpan, calculate, rule_from_rows
)

logger = logging.getLogger(__name__)


def _trip_participants(trip_id: int, db: Session) -> Dict[int, TripParticipant]:
    participants = db.query(TripParticipant).filter(TripParticipant.trip_id == trip_id).all()
    return {p.id: p for p in participants}


def _calculate_shares(
    trip: Trip,
    participants: Dict[int, TripParticipant],
    payer_id: int,
    total: Money,
    rule: SplitRule,
    participant_ids: Sequence[int]
) -> List[ComputedShare]:
    if payer_id not in participants:
        raise NotFound("Participant", payer_id)
    spans = []
    for participant_id in participant_ids:
        if participant_id not in participants:
            raise NotFound("Participant", participant_id)
        spans.append(ParticipantSpan.from_participant(participants[participant_id]))

    return calculate(
        total,
        rule,
        spans,
        trip_span=TripSpan(trip.start_date, trip.end_date),
        redistribute_discount=settings.PRORATION_REDISTRIBUTE_DISCOUNT
    )


def _freeze_rate(currency: str, trip: Trip, expense_date: date, db: Session, resolver) -> Optional[Decimal]:
    """Capture the expense -> base rate now; None for base-currency or unresolvable expenses."""
    if currency == trip.base_currency:
        return None
    if resolver is None:
        logger.warning(f"No rate resolver configured; {currency} expense stored without FX snapshot")
        return None
    try:
        return resolver.resolve(currency, trip.base_currency, expense_date, db=db)
    except RateUnavailable as e:
        logger.warning(f"Storing expense without FX snapshot: {e}")
        return None


def _add_shares(expense_id: int, computed: List[ComputedShare], db: Session):
    for share in computed:
        db.add(ExpenseShare(
            expense_id=expense_id,
            participant_id=share.participant_id,
            split_rule=share.split_rule,
            raw_value=share.raw_value,
            share_amount=share.amount
        ))


def create_expense(
    trip_id: int,
    payer_id: int,
    expense_date: date,
    amount: int,
    currency: str,
    rule: SplitRule,
    participant_ids: Sequence[int],
    db: Session,
    description: str = None,
    category: str = None,
    resolver=None,
    cache: Optional[BalanceCache] = balance_cache
) -> Expense:
    """Create an expense with its shares in one transaction."""
    trip = get_trip(trip_id, db)
    participants = _trip_participants(trip_id, db)
    total = Money(amount, currency)

    # Split errors (ShareMismatch etc.) surface here, before anything is written
    computed = _calculate_shares(trip, participants, payer_id, total, rule, participant_ids)
    fx_rate = _freeze_rate(total.currency, trip, expense_date, db, resolver)

    with unit_of_work(db):
        expense = Expense(
            trip_id=trip_id,
            payer_id=payer_id,
            date=expense_date,
            amount=total.amount,
            currency=total.currency,
            fx_rate=fx_rate,
            description=description,
            category=category.lower() if category else None
        )
        db.add(expense)
        db.flush()
        _add_shares(expense.id, computed, db)
        bump_ledger_version(trip_id, db)

    if cache is not None:
        cache.invalidate(trip_id)
    db.refresh(expense)
    logger.info(f"Created expense {expense.id} on trip {trip_id}: {total} split {rule.kind.value}")
    return expense


def get_expense(trip_id: int, expense_id: int, db: Session) -> Expense:
    expense = db.query(Expense).filter(
        Expense.id == expense_id,
        Expense.trip_id == trip_id
    ).first()
    if not expense:
        raise NotFound("Expense", expense_id)
    return expense


def list_expenses(trip_id: int, db: Session) -> List[Expense]:
    get_trip(trip_id, db)
    return db.query(Expense).filter(
        Expense.trip_id == trip_id
    ).order_by(Expense.date, Expense.id).all()


def update_expense(
    trip_id: int,
    expense_id: int,
    payer_id: int,
    expense_date: date,
    amount: int,
    currency: str,
    rule: SplitRule,
    participant_ids: Sequence[int],
    db: Session,
    description: str = None,
    category: str = None,
    resolver=None,
    cache: Optional[BalanceCache] = balance_cache
) -> Expense:
    """
    Full edit: every field and the whole split are replaced.

    The frozen FX rate is kept unless the currency or date changed, in which
    case a fresh snapshot is taken.
    """
    trip = get_trip(trip_id, db)
    expense = get_expense(trip_id, expense_id, db)
    participants = _trip_participants(trip_id, db)
    total = Money(amount, currency)

    computed = _calculate_shares(trip, participants, payer_id, total, rule, participant_ids)
    if total.currency == expense.currency and expense_date == expense.date:
        fx_rate = expense.fx_rate
    else:
        fx_rate = _freeze_rate(total.currency, trip, expense_date, db, resolver)

    with unit_of_work(db):
        # Unload the collection so the old rows are not cascaded back in on flush
        db.expire(expense, ["shares"])
        db.query(ExpenseShare).filter(
            ExpenseShare.expense_id == expense_id
        ).delete()
        expense.payer_id = payer_id
        expense.date = expense_date
        expense.amount = total.amount
        expense.currency = total.currency
        expense.fx_rate = fx_rate
        expense.description = description
        expense.category = category.lower() if category else None
        _add_shares(expense_id, computed, db)
        bump_ledger_version(trip_id, db)

    if cache is not None:
        cache.invalidate(trip_id)
    db.refresh(expense)
    logger.info(f"Updated expense {expense_id} on trip {trip_id}")
    return expense


def delete_expense(
    trip_id: int,
    expense_id: int,
    db: Session,
    cache: Optional[BalanceCache] = balance_cache
) -> None:
    expense = get_expense(trip_id, expense_id, db)
    with unit_of_work(db):
        db.delete(expense)
        bump_ledger_version(trip_id, db)
    if cache is not None:
        cache.invalidate(trip_id)
    logger.info(f"Deleted expense {expense_id} on trip {trip_id}")


def recalculate_expense_shares(trip_id: int, expense_id: int, db: Session,
                               cache: Optional[BalanceCache] = balance_cache) -> Expense:
    """Recompute stored shares from their raw values, e.g. after a participant's dates changed."""
    expense = get_expense(trip_id, expense_id, db)
    rule = rule_from_rows(expense.shares)
    participant_ids = [share.participant_id for share in expense.shares]
    return update_expense(
        trip_id,
        expense_id,
        expense.payer_id,
        expense.date,
        expense.amount,
        expense.currency,
        rule,
        participant_ids,
        db,
        description=expense.description,
        category=expense.category,
        cache=cache
    )
