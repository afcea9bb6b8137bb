"""
Ledger service: fold a trip's expenses into net balances per participant.
"""
from sqlalchemy.orm import Session
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging
import threading
from app.core.config import settings
from app.core.exceptions import InternalInconsistency, NotFound, RateUnavailable, SnapshotConflict
from app.core.money import Money, convert_minor, normalize_currency
from app.models.expense import Expense, ExpenseShare
from app.models.settlement import Settlement, SettlementStatus
from app.models.trip import Trip, TripParticipant

logger = logging.getLogger(__name__)

RateLookup = Callable[[str, str, date], Decimal]


@dataclass(frozen=True)
class LedgerExpense:
    id: int
    payer_id: int
    amount: int
    currency: str
    date: date
    fx_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class LedgerShare:
    expense_id: int
    participant_id: int
    share_amount: int


@dataclass(frozen=True)
class LedgerTransfer:
    """A confirmed payment; moves value from sender's debt to receiver's credit."""
    from_participant_id: int
    to_participant_id: int
    amount: int
    currency: str


@dataclass(frozen=True)
class NetBalance:
    participant_id: int
    amount: Money  # positive = is owed money, negative = owes money


@dataclass
class LedgerResult:
    balances: List[NetBalance]
    degraded_expense_ids: List[int] = field(default_factory=list)

    @property
    def currency(self) -> Optional[str]:
        return self.balances[0].amount.currency if self.balances else None


def aggregate(
    base_currency: str,
    expenses: Iterable,
    shares: Iterable,
    resolve_rate: RateLookup = None,
    participant_ids: Iterable[int] = (),
    transfers: Iterable = ()
) -> LedgerResult:
    """
    Compute net balances in ``base_currency``.

    Every share is converted with its expense's frozen rate (half-to-even) and
    debited to the participant; the payer is credited the sum of the converted
    shares, so each expense nets to exactly zero. Foreign-currency expenses
    without a frozen rate are looked up through ``resolve_rate``; if that is
    missing or raises RateUnavailable the expense is skipped and reported in
    ``degraded_expense_ids``. Integer accumulation makes the result independent
    of expense order.
    """
    base_currency = normalize_currency(base_currency)
    shares_by_expense: Dict[int, List] = defaultdict(list)
    for share in shares:
        shares_by_expense[share.expense_id].append(share)

    totals: Dict[int, int] = {pid: 0 for pid in participant_ids}
    degraded: List[int] = []

    for expense in expenses:
        rate = _rate_for(expense, base_currency, resolve_rate)
        if rate is None:
            logger.warning(f"Expense {expense.id} excluded from balances: no {expense.currency}->{base_currency} rate")
            degraded.append(expense.id)
            continue

        collected = 0
        for share in shares_by_expense.get(expense.id, []):
            converted = convert_minor(share.share_amount, rate)
            totals[share.participant_id] = totals.get(share.participant_id, 0) - converted
            collected += converted
        totals[expense.payer_id] = totals.get(expense.payer_id, 0) + collected

    for transfer in transfers:
        if normalize_currency(transfer.currency) != base_currency:
            raise InternalInconsistency(
                f"Settled transfer in {transfer.currency} does not match base currency {base_currency}"
            )
        totals[transfer.from_participant_id] = totals.get(transfer.from_participant_id, 0) + transfer.amount
        totals[transfer.to_participant_id] = totals.get(transfer.to_participant_id, 0) - transfer.amount

    drift = sum(totals.values())
    if drift != 0:
        raise InternalInconsistency(f"Balances sum to {drift} {base_currency}, expected 0")

    balances = [
        NetBalance(participant_id=pid, amount=Money(amount, base_currency))
        for pid, amount in sorted(totals.items())
    ]
    return LedgerResult(balances=balances, degraded_expense_ids=sorted(degraded))


def _rate_for(expense, base_currency: str, resolve_rate: Optional[RateLookup]) -> Optional[Decimal]:
    currency = normalize_currency(expense.currency)
    if currency == base_currency:
        return Decimal(1)
    if expense.fx_rate is not None:
        return Decimal(expense.fx_rate)
    if resolve_rate is None:
        return None
    try:
        return resolve_rate(currency, base_currency, expense.date)
    except RateUnavailable:
        return None


class BalanceCache:
    """Computed balances per trip, valid only for the ledger version they were built from."""

    def __init__(self):
        self._entries: Dict[int, Tuple[int, LedgerResult]] = {}
        self._lock = threading.Lock()

    def get(self, trip_id: int, version: int) -> Optional[LedgerResult]:
        with self._lock:
            entry = self._entries.get(trip_id)
        if entry is None or entry[0] != version:
            return None
        return entry[1]

    def put(self, trip_id: int, version: int, result: LedgerResult) -> None:
        with self._lock:
            self._entries[trip_id] = (version, result)

    def invalidate(self, trip_id: int) -> None:
        with self._lock:
            self._entries.pop(trip_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


balance_cache = BalanceCache()


@dataclass(frozen=True)
class LedgerSnapshot:
    version: int
    base_currency: str
    participant_ids: Tuple[int, ...]
    expenses: Tuple[LedgerExpense, ...]
    shares: Tuple[LedgerShare, ...]
    transfers: Tuple[LedgerTransfer, ...]


def get_trip(trip_id: int, db: Session) -> Trip:
    """Load a trip or raise NotFound."""
    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFound("Trip", trip_id)
    return trip


def current_ledger_version(trip_id: int, db: Session) -> int:
    version = db.query(Trip.ledger_version).filter(Trip.id == trip_id).scalar()
    if version is None:
        raise NotFound("Trip", trip_id)
    return version


def bump_ledger_version(trip_id: int, db: Session) -> None:
    """Atomically increment the trip's ledger version inside the caller's transaction."""
    db.query(Trip).filter(Trip.id == trip_id).update(
        {Trip.ledger_version: Trip.ledger_version + 1},
        synchronize_session=False
    )


def load_snapshot(trip: Trip, db: Session) -> LedgerSnapshot:
    """Read everything the aggregator needs into immutable values."""
    version = current_ledger_version(trip.id, db)
    participant_ids = tuple(
        pid for (pid,) in db.query(TripParticipant.id).filter(
            TripParticipant.trip_id == trip.id
        ).order_by(TripParticipant.id)
    )
    expenses = tuple(
        LedgerExpense(
            id=e.id,
            payer_id=e.payer_id,
            amount=e.amount,
            currency=e.currency,
            date=e.date,
            fx_rate=Decimal(e.fx_rate) if e.fx_rate is not None else None
        )
        for e in db.query(Expense).filter(Expense.trip_id == trip.id).order_by(Expense.id)
    )
    shares = tuple(
        LedgerShare(expense_id=s.expense_id, participant_id=s.participant_id, share_amount=s.share_amount)
        for s in db.query(ExpenseShare).join(Expense).filter(
            Expense.trip_id == trip.id
        ).order_by(ExpenseShare.id)
    )
    transfers = tuple(
        LedgerTransfer(
            from_participant_id=s.from_participant_id,
            to_participant_id=s.to_participant_id,
            amount=s.amount,
            currency=s.currency
        )
        for s in db.query(Settlement).filter(
            Settlement.trip_id == trip.id,
            Settlement.status == SettlementStatus.SETTLED
        ).order_by(Settlement.id)
    )
    return LedgerSnapshot(
        version=version,
        base_currency=trip.base_currency,
        participant_ids=participant_ids,
        expenses=expenses,
        shares=shares,
        transfers=transfers
    )


def compute_balances(
    trip_id: int,
    db: Session,
    resolver=None,
    cache: Optional[BalanceCache] = balance_cache
) -> LedgerResult:
    """
    Net balances for a trip in its base currency.

    The aggregation runs on a snapshot tagged with the trip's ledger version.
    If the version moved while computing, the result is discarded and the
    snapshot retaken, up to LEDGER_SNAPSHOT_RETRIES attempts.
    """
    trip = get_trip(trip_id, db)
    resolve_rate = partial(resolver.resolve, db=db) if resolver is not None else None

    attempts = max(settings.LEDGER_SNAPSHOT_RETRIES, 1)
    for attempt in range(1, attempts + 1):
        version = current_ledger_version(trip_id, db)
        if cache is not None:
            cached = cache.get(trip_id, version)
            if cached is not None:
                return cached

        snapshot = load_snapshot(trip, db)
        result = aggregate(
            snapshot.base_currency,
            snapshot.expenses,
            snapshot.shares,
            resolve_rate=resolve_rate,
            participant_ids=snapshot.participant_ids,
            transfers=snapshot.transfers
        )

        if current_ledger_version(trip_id, db) == snapshot.version:
            # Degraded results are not cached so a later call can retry the rate lookup
            if cache is not None and not result.degraded_expense_ids:
                cache.put(trip_id, snapshot.version, result)
            return result

        logger.info(f"Ledger for trip {trip_id} changed during computation (attempt {attempt}); retrying")
        db.expire_all()

    raise SnapshotConflict(f"Ledger for trip {trip_id} kept changing; gave up after {attempts} attempts")
