"""
Settlement service: debt simplification and the settlement record store.
"""
from sqlalchemy.orm import Session
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence
import logging
from app.core.exceptions import InternalInconsistency, NotFound
from app.core.money import Money
from app.db.session import unit_of_work
from app.models.settlement import Settlement, SettlementStatus
from app.services.ledger_service import (
    BalanceCache, LedgerResult, NetBalance, balance_cache, bump_ledger_version, compute_balances, get_trip
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transfer:
    """Represents a single suggested payment between participants."""
    from_participant_id: int
    to_participant_id: int
    amount: Money


def optimize(balances: Sequence[NetBalance]) -> List[Transfer]:
    """
    Reduce net balances to a short list of transfers using a greedy algorithm.

    Creditors and debtors are each sorted by amount owed (descending, ties by
    ascending participant id); the head debtor pays the head creditor the
    smaller of the two amounts until one side is exhausted. This is not
    guaranteed to be the minimum number of transfers, but it never needs more
    than creditors + debtors - 1 and is fully deterministic.
    """
    if not balances:
        return []

    currencies = {b.amount.currency for b in balances}
    if len(currencies) > 1:
        raise ValueError(f"Balances in mixed currencies: {sorted(currencies)}")
    currency = currencies.pop()

    ids = [b.participant_id for b in balances]
    if len(set(ids)) != len(ids):
        raise ValueError("Duplicate participant in balances")

    # [participant_id, remaining] pairs; debtors stored as positive amounts
    creditors = [[b.participant_id, b.amount.amount] for b in balances if b.amount.amount > 0]
    debtors = [[b.participant_id, -b.amount.amount] for b in balances if b.amount.amount < 0]
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    cred_idx = 0
    debt_idx = 0

    while cred_idx < len(creditors) and debt_idx < len(debtors):
        creditor = creditors[cred_idx]
        debtor = debtors[debt_idx]

        # Transfer the minimum of what's owed and what's needed
        amount = min(creditor[1], debtor[1])
        transfers.append(Transfer(debtor[0], creditor[0], Money(amount, currency)))

        creditor[1] -= amount
        debtor[1] -= amount
        if creditor[1] == 0:
            cred_idx += 1
        if debtor[1] == 0:
            debt_idx += 1

    residual = sum(c[1] for c in creditors[cred_idx:]) + sum(d[1] for d in debtors[debt_idx:])
    if residual:
        raise InternalInconsistency(
            f"Settlement plan leaves {residual} {currency} unbalanced"
        )
    return transfers


def summarize_settlement(
    result: LedgerResult,
    transfers: Sequence[Transfer],
    names: Optional[Mapping[int, str]] = None
) -> str:
    """Human-readable summary of balances, transfers and excluded expenses."""
    names = names or {}

    def label(participant_id: int) -> str:
        return names.get(participant_id, f"Participant {participant_id}")

    currency = result.currency or ""
    summary_lines = [f"Participants: {len(result.balances)}", "", "Net balances:"]
    for balance in result.balances:
        summary_lines.append(f"  {label(balance.participant_id)}: {balance.amount.amount:+d} {currency}")
    summary_lines.append("")
    summary_lines.append("Transfers:")
    if not transfers:
        summary_lines.append("  (none)")
    for transfer in transfers:
        summary_lines.append(
            f"  {label(transfer.from_participant_id)} -> {label(transfer.to_participant_id)}: "
            f"{transfer.amount.amount} {transfer.amount.currency}"
        )
    if result.degraded_expense_ids:
        summary_lines.append("")
        summary_lines.append(
            "Excluded (no exchange rate): " + ", ".join(str(i) for i in result.degraded_expense_ids)
        )
    return "\n".join(summary_lines)


def compute_settlements(
    trip_id: int,
    db: Session,
    resolver=None,
    cache: Optional[BalanceCache] = balance_cache
) -> List[Transfer]:
    """Current settlement proposal for a trip. Nothing is persisted."""
    result = compute_balances(trip_id, db, resolver=resolver, cache=cache)
    return optimize(result.balances)


def record_settlements(
    trip_id: int,
    db: Session,
    resolver=None,
    cache: Optional[BalanceCache] = balance_cache
) -> List[Settlement]:
    """
    Store the current proposal as pending settlements.

    Previously recorded pending rows for the trip are replaced in the same
    transaction; settled rows are history and stay untouched.
    """
    transfers = compute_settlements(trip_id, db, resolver=resolver, cache=cache)

    with unit_of_work(db):
        db.query(Settlement).filter(
            Settlement.trip_id == trip_id,
            Settlement.status == SettlementStatus.PENDING
        ).delete(synchronize_session=False)

        rows = [
            Settlement(
                trip_id=trip_id,
                from_participant_id=t.from_participant_id,
                to_participant_id=t.to_participant_id,
                amount=t.amount.amount,
                currency=t.amount.currency,
                status=SettlementStatus.PENDING
            )
            for t in transfers
        ]
        db.add_all(rows)

    for row in rows:
        db.refresh(row)
    logger.info(f"Recorded {len(rows)} pending settlements for trip {trip_id}")
    return rows


def list_settlements(
    trip_id: int,
    db: Session,
    status: Optional[SettlementStatus] = None
) -> List[Settlement]:
    get_trip(trip_id, db)
    query = db.query(Settlement).filter(Settlement.trip_id == trip_id)
    if status is not None:
        query = query.filter(Settlement.status == status)
    return query.order_by(Settlement.id).all()


def get_settlement(settlement_id: int, db: Session) -> Settlement:
    settlement = db.query(Settlement).filter(Settlement.id == settlement_id).first()
    if not settlement:
        raise NotFound("Settlement", settlement_id)
    return settlement


def mark_settled(
    settlement_id: int,
    settled_by: int,
    db: Session,
    note: str = None,
    now: datetime = None,
    cache: Optional[BalanceCache] = balance_cache
) -> Settlement:
    """
    Mark a settlement as paid.

    The update only matches rows that are still pending, so concurrent or
    repeated confirmations collapse into one; re-marking a settled row is a
    no-op that returns it unchanged.
    """
    settlement = get_settlement(settlement_id, db)
    trip_id = settlement.trip_id

    values: Dict = {
        Settlement.status: SettlementStatus.SETTLED,
        Settlement.settled_at: now or datetime.now(timezone.utc),
        Settlement.settled_by: settled_by,
    }
    if note is not None:
        values[Settlement.note] = note

    with unit_of_work(db):
        updated = db.query(Settlement).filter(
            Settlement.id == settlement_id,
            Settlement.status == SettlementStatus.PENDING
        ).update(values, synchronize_session=False)
        if updated:
            # Settled payments count towards balances
            bump_ledger_version(trip_id, db)

    if updated:
        if cache is not None:
            cache.invalidate(trip_id)
        logger.info(f"Settlement {settlement_id} marked settled by user {settled_by}")
    else:
        logger.info(f"Settlement {settlement_id} already settled; nothing to do")

    db.refresh(settlement)
    return settlement
