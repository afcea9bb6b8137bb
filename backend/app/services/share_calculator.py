"""
Share calculation: turn one expense total and split rule into exact integer shares.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from app.core.exceptions import InvalidSplit, ShareMismatch
from app.core.money import Money, round_minor
from app.models.expense import RAW_VALUE_PLACES, SplitRuleType


@dataclass(frozen=True)
class Equal:
    """Divide the total evenly between the participants."""
    kind: ClassVar[SplitRuleType] = SplitRuleType.EQUAL


@dataclass(frozen=True)
class Percentage:
    """participant id -> percentage of the total (must sum to 100)."""
    percentages: Mapping[int, Decimal]
    kind: ClassVar[SplitRuleType] = SplitRuleType.PERCENTAGE


@dataclass(frozen=True)
class Amount:
    """participant id -> exact share in minor units (must sum to the total)."""
    amounts: Mapping[int, int]
    kind: ClassVar[SplitRuleType] = SplitRuleType.AMOUNT


@dataclass(frozen=True)
class Shares:
    """participant id -> relative weight."""
    weights: Mapping[int, Decimal]
    kind: ClassVar[SplitRuleType] = SplitRuleType.SHARES


SplitRule = Union[Equal, Percentage, Amount, Shares]


@dataclass(frozen=True)
class ParticipantSpan:
    """A participant id with its optional inclusive attendance dates."""
    participant_id: int
    join_start_date: Optional[date] = None
    join_end_date: Optional[date] = None

    @classmethod
    def from_participant(cls, participant) -> "ParticipantSpan":
        return cls(participant.id, participant.join_start_date, participant.join_end_date)


@dataclass(frozen=True)
class TripSpan:
    start_date: date
    end_date: date

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True)
class ComputedShare:
    participant_id: int
    split_rule: SplitRuleType
    raw_value: Optional[Decimal]
    amount: int


def days_joined(participant: ParticipantSpan, trip_span: TripSpan) -> Optional[int]:
    """
    Days a partial joiner attends, clamped to the trip range.

    Returns None for full participation: either join date unset, or the
    clamped range covering the whole trip.
    """
    if participant.join_start_date is None or participant.join_end_date is None:
        return None
    start = max(participant.join_start_date, trip_span.start_date)
    end = min(participant.join_end_date, trip_span.end_date)
    days = max((end - start).days + 1, 0)
    if days >= trip_span.total_days:
        return None
    return days


def calculate(
    total: Money,
    rule: SplitRule,
    participants: Sequence[ParticipantSpan],
    trip_span: TripSpan = None,
    redistribute_discount: bool = False
) -> List[ComputedShare]:
    """
    Split ``total`` between ``participants`` according to ``rule``.

    Shares are returned in ascending participant id order and always sum to
    ``total.amount`` exactly, with one exception: an equal split with a
    ``trip_span`` scales partial joiners' shares by the fraction of days they
    attend and does not charge the discount to anybody else (unless
    ``redistribute_discount`` is set, in which case the total is divided by
    attendance days instead).
    """
    if total.amount <= 0:
        raise InvalidSplit("Expense total must be positive")
    if not participants:
        raise InvalidSplit("At least one participant is required")

    ordered = sorted(participants, key=lambda p: p.participant_id)
    ids = [p.participant_id for p in ordered]
    if len(set(ids)) != len(ids):
        raise InvalidSplit("Duplicate participant ids")

    if isinstance(rule, Equal):
        amounts = _split_equal(total.amount, ordered, trip_span, redistribute_discount)
        raw_values = {pid: None for pid in ids}
    elif isinstance(rule, Percentage):
        _require_keys(rule.percentages, ids)
        raw_values = {pid: Decimal(rule.percentages[pid]) for pid in ids}
        _require_storable(raw_values)
        if any(v < 0 for v in raw_values.values()):
            raise InvalidSplit("Percentages must not be negative")
        pct_sum = sum(raw_values.values())
        if pct_sum != 100:
            raise ShareMismatch(Decimal(100), pct_sum, f"Percentages sum to {pct_sum}, expected 100")
        amounts = _split_weighted(total.amount, raw_values, divisor=Decimal(100))
    elif isinstance(rule, Amount):
        _require_keys(rule.amounts, ids)
        amounts = {}
        for pid in ids:
            value = rule.amounts[pid]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidSplit(f"Share for participant {pid} must be a non-negative integer")
            amounts[pid] = value
        given = sum(amounts.values())
        if given != total.amount:
            raise ShareMismatch(total.amount, given)
        raw_values = {pid: Decimal(amounts[pid]) for pid in ids}
    elif isinstance(rule, Shares):
        _require_keys(rule.weights, ids)
        raw_values = {pid: Decimal(rule.weights[pid]) for pid in ids}
        _require_storable(raw_values)
        if any(v < 0 for v in raw_values.values()):
            raise InvalidSplit("Weights must not be negative")
        amounts = _split_weighted(total.amount, raw_values)
    else:
        raise TypeError(f"Unsupported split rule: {rule!r}")

    return [
        ComputedShare(participant_id=pid, split_rule=rule.kind, raw_value=raw_values[pid], amount=amounts[pid])
        for pid in ids
    ]


def rule_from_rows(rows: Iterable) -> SplitRule:
    """Rebuild a split rule from stored share rows (split_rule, participant_id, raw_value)."""
    rows = list(rows)
    if not rows:
        raise InvalidSplit("No shares stored")
    kinds = {SplitRuleType(row.split_rule) for row in rows}
    if len(kinds) != 1:
        raise InvalidSplit(f"Mixed split rules: {sorted(k.value for k in kinds)}")
    kind = kinds.pop()
    if kind == SplitRuleType.EQUAL:
        return Equal()
    if kind == SplitRuleType.PERCENTAGE:
        return Percentage({row.participant_id: Decimal(row.raw_value) for row in rows})
    if kind == SplitRuleType.AMOUNT:
        return Amount({row.participant_id: int(row.raw_value) for row in rows})
    if kind == SplitRuleType.SHARES:
        return Shares({row.participant_id: Decimal(row.raw_value) for row in rows})
    raise TypeError(f"Unsupported split rule: {kind!r}")


def _require_keys(mapping: Mapping[int, object], ids: List[int]):
    if set(mapping) != set(ids):
        raise InvalidSplit(
            f"Split values given for {sorted(mapping)} but participants are {ids}"
        )


def _require_storable(raw_values: Dict[int, Decimal]):
    # Stored shares are recalculated from raw values; extra digits would be lost
    for pid, value in raw_values.items():
        if value.as_tuple().exponent < -RAW_VALUE_PLACES:
            raise InvalidSplit(
                f"Value {value} for participant {pid} has more than {RAW_VALUE_PLACES} decimal places"
            )


def _split_equal(
    total: int,
    ordered: List[ParticipantSpan],
    trip_span: Optional[TripSpan],
    redistribute_discount: bool
) -> Dict[int, int]:
    prorated: Dict[int, int] = {}
    if trip_span is not None:
        for p in ordered:
            days = days_joined(p, trip_span)
            if days is not None:
                prorated[p.participant_id] = days

    if prorated and redistribute_discount:
        weights = {
            p.participant_id: Decimal(prorated.get(p.participant_id, trip_span.total_days))
            for p in ordered
        }
        return _split_weighted(total, weights)

    base, remainder = divmod(total, len(ordered))
    amounts = {}
    for p in ordered:
        days = prorated.get(p.participant_id)
        if days is None:
            amounts[p.participant_id] = base
        else:
            amounts[p.participant_id] = round_minor(Decimal(base) * days / trip_span.total_days)

    # Leftover units go to full participants first, each group in ascending id
    full_ids = [p.participant_id for p in ordered if p.participant_id not in prorated]
    partial_ids = [p.participant_id for p in ordered if p.participant_id in prorated]
    for pid in (full_ids + partial_ids)[:remainder]:
        amounts[pid] += 1
    return amounts


def _split_weighted(total: int, weights: Dict[int, Decimal], divisor: Decimal = None) -> Dict[int, int]:
    """
    round(total * w / divisor) per participant; the largest weight absorbs the residual.

    A negative residual larger than the largest share (many small shares all
    rounded up) is taken one participant at a time down the weight order, so
    no share drops below zero.
    """
    if divisor is None:
        divisor = sum(weights.values())
    if divisor <= 0:
        raise InvalidSplit("Weights must have a positive sum")

    amounts = {pid: round_minor(Decimal(total) * w / divisor) for pid, w in weights.items()}
    residual = total - sum(amounts.values())
    by_weight = sorted(weights, key=lambda pid: (-weights[pid], pid))
    if residual > 0:
        amounts[by_weight[0]] += residual
    elif residual < 0:
        for pid in by_weight:
            taken = min(amounts[pid], -residual)
            amounts[pid] -= taken
            residual += taken
            if not residual:
                break
    return amounts
