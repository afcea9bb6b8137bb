"""
Tests for folding expenses into net balances.
"""
import pytest
import random
from datetime import date
from decimal import Decimal
from app.core.exceptions import InternalInconsistency, RateUnavailable
from app.core.money import Money
from app.services.ledger_service import LedgerExpense, LedgerShare, LedgerTransfer, aggregate
from app.services.share_calculator import Equal, ParticipantSpan, TripSpan, calculate


def balances_of(result):
    return {b.participant_id: b.amount.amount for b in result.balances}


def test_foreign_expense_uses_frozen_rate_and_nets_to_zero():
    """USD 10.00 at 0.9, split 333/333/334: payer is credited what the shares convert to."""
    expenses = [LedgerExpense(id=1, payer_id=1, amount=1000, currency="USD", date=date(2025, 6, 2), fx_rate=Decimal("0.9"))]
    shares = [
        LedgerShare(expense_id=1, participant_id=1, share_amount=333),
        LedgerShare(expense_id=1, participant_id=2, share_amount=333),
        LedgerShare(expense_id=1, participant_id=3, share_amount=334),
    ]
    result = aggregate("EUR", expenses, shares)
    assert balances_of(result) == {1: 601, 2: -300, 3: -301}
    assert result.currency == "EUR"
    assert result.degraded_expense_ids == []


def test_base_currency_expense_is_not_converted():
    expenses = [LedgerExpense(id=1, payer_id=2, amount=900, currency="EUR", date=date(2025, 6, 2))]
    shares = [LedgerShare(1, pid, 300) for pid in (1, 2, 3)]
    assert balances_of(aggregate("EUR", expenses, shares)) == {1: -300, 2: 600, 3: -300}


def test_expense_without_rate_is_reported_as_degraded():
    expenses = [
        LedgerExpense(id=1, payer_id=1, amount=600, currency="EUR", date=date(2025, 6, 2)),
        LedgerExpense(id=2, payer_id=2, amount=5000, currency="JPY", date=date(2025, 6, 3)),
    ]
    shares = [LedgerShare(1, 1, 300), LedgerShare(1, 2, 300), LedgerShare(2, 1, 2500), LedgerShare(2, 2, 2500)]
    result = aggregate("EUR", expenses, shares)
    assert result.degraded_expense_ids == [2]
    assert balances_of(result) == {1: 300, 2: -300}


def test_missing_rate_is_looked_up_through_resolver():
    calls = []

    def resolve(from_currency, to_currency, on_date):
        calls.append((from_currency, to_currency, on_date))
        if from_currency == "JPY":
            raise RateUnavailable(from_currency, to_currency, on_date)
        return Decimal("0.5")

    expenses = [
        LedgerExpense(id=1, payer_id=1, amount=200, currency="USD", date=date(2025, 6, 2)),
        LedgerExpense(id=2, payer_id=1, amount=1000, currency="JPY", date=date(2025, 6, 3)),
    ]
    shares = [LedgerShare(1, 1, 100), LedgerShare(1, 2, 100), LedgerShare(2, 2, 1000)]
    result = aggregate("EUR", expenses, shares, resolve_rate=resolve)
    assert calls == [("USD", "EUR", date(2025, 6, 2)), ("JPY", "EUR", date(2025, 6, 3))]
    assert balances_of(result) == {1: 50, 2: -50}
    assert result.degraded_expense_ids == [2]


def test_result_does_not_depend_on_expense_order():
    rng = random.Random(7)
    expenses = []
    shares = []
    for expense_id in range(1, 30):
        payer = rng.randint(1, 4)
        currency, rate = rng.choice([("EUR", None), ("USD", Decimal("0.9")), ("GBP", Decimal("1.1734"))])
        split = [rng.randint(1, 5000) for _ in range(4)]
        expenses.append(LedgerExpense(expense_id, payer, sum(split), currency, date(2025, 6, 1), rate))
        shares.extend(LedgerShare(expense_id, pid, amount) for pid, amount in zip(range(1, 5), split))

    forward = aggregate("EUR", expenses, shares)
    shuffled = list(expenses)
    rng.shuffle(shuffled)
    backward = aggregate("EUR", shuffled, list(reversed(shares)))
    assert forward.balances == backward.balances
    assert sum(balances_of(forward).values()) == 0


def test_settled_transfers_move_balances():
    expenses = [LedgerExpense(id=1, payer_id=1, amount=900, currency="EUR", date=date(2025, 6, 2))]
    shares = [LedgerShare(1, pid, 300) for pid in (1, 2, 3)]
    transfers = [LedgerTransfer(from_participant_id=2, to_participant_id=1, amount=300, currency="EUR")]
    assert balances_of(aggregate("EUR", expenses, shares, transfers=transfers)) == {1: 300, 2: 0, 3: -300}


def test_participants_without_activity_are_listed_at_zero():
    result = aggregate("EUR", [], [], participant_ids=[3, 1, 2])
    assert [b.participant_id for b in result.balances] == [1, 2, 3]
    assert all(b.amount == Money(0, "EUR") for b in result.balances)


def test_transfer_in_other_currency_is_an_inconsistency():
    transfers = [LedgerTransfer(from_participant_id=2, to_participant_id=1, amount=300, currency="USD")]
    with pytest.raises(InternalInconsistency):
        aggregate("EUR", [], [], participant_ids=[1, 2], transfers=transfers)


def test_prorated_expense_still_nets_to_zero():
    """A partial joiner's discount is never charged to the payer as phantom credit."""
    participants = [ParticipantSpan(pid) for pid in (1, 2, 3)] + [ParticipantSpan(4, date(2025, 6, 3), date(2025, 6, 6))]
    computed = calculate(
        Money(10000, "USD"), Equal(), participants, trip_span=TripSpan(date(2025, 6, 1), date(2025, 6, 10))
    )
    expenses = [LedgerExpense(id=1, payer_id=2, amount=10000, currency="USD", date=date(2025, 6, 4), fx_rate=Decimal("0.9"))]
    shares = [LedgerShare(1, share.participant_id, share.amount) for share in computed]

    result = aggregate("EUR", expenses, shares)

    # 2500 -> 2250 EUR for full participants, 1000 -> 900 EUR for the joiner
    assert balances_of(result) == {1: -2250, 2: 5400, 3: -2250, 4: -900}
    assert sum(balances_of(result).values()) == 0
