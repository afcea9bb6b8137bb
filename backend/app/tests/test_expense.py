"""
Tests for the expense service.
"""
import pytest
from datetime import date
from decimal import Decimal
from app.core.exceptions import NotFound, ShareMismatch
from app.models.expense import Expense, ExpenseShare, SplitRuleType
from app.services import expense_service
from app.services.ledger_service import compute_balances, current_ledger_version
from app.services.share_calculator import Amount, Equal, Percentage


def share_amounts(expense):
    return [(s.participant_id, s.share_amount) for s in expense.shares]


def test_create_expense(db, trip, participants, cache):
    """Shares are stored with the rule and the ledger version moves."""
    ids = [p.id for p in participants]
    version = current_ledger_version(trip.id, db)

    expense = expense_service.create_expense(
        trip.id, ids[0], date(2025, 6, 2), 100, "eur", Equal(), ids, db,
        description="Coffee", category="Food", cache=cache
    )

    assert expense.currency == "EUR"
    assert expense.category == "food"
    assert expense.fx_rate is None
    assert share_amounts(expense) == [(ids[0], 34), (ids[1], 33), (ids[2], 33)]
    assert all(s.split_rule == SplitRuleType.EQUAL for s in expense.shares)
    assert current_ledger_version(trip.id, db) == version + 1


def test_rejected_split_writes_nothing(db, trip, participants, cache):
    ids = [p.id for p in participants]
    version = current_ledger_version(trip.id, db)

    with pytest.raises(ShareMismatch):
        expense_service.create_expense(
            trip.id, ids[0], date(2025, 6, 2), 1000, "EUR", Amount({ids[0]: 500, ids[1]: 400}), ids[:2], db, cache=cache
        )

    assert db.query(Expense).count() == 0
    assert db.query(ExpenseShare).count() == 0
    assert current_ledger_version(trip.id, db) == version


def test_unknown_payer_or_trip(db, trip, participants, cache):
    ids = [p.id for p in participants]
    with pytest.raises(NotFound):
        expense_service.create_expense(trip.id, 9999, date(2025, 6, 2), 100, "EUR", Equal(), ids, db, cache=cache)
    with pytest.raises(NotFound):
        expense_service.create_expense(9999, ids[0], date(2025, 6, 2), 100, "EUR", Equal(), ids, db, cache=cache)


def test_foreign_expense_freezes_rate(db, trip, participants, resolver, fetcher, cache):
    ids = [p.id for p in participants]
    expense = expense_service.create_expense(
        trip.id, ids[0], date(2025, 6, 2), 1000, "USD", Equal(), ids, db, resolver=resolver, cache=cache
    )
    assert Decimal(expense.fx_rate) == Decimal("0.9")

    # A later rate change does not touch the stored snapshot
    fetcher.rates[("USD", "EUR")] = Decimal("2")
    resolver.cache.clear()
    result = compute_balances(trip.id, db, resolver=resolver, cache=cache)
    assert {b.participant_id: b.amount.amount for b in result.balances} == {ids[0]: 600, ids[1]: -300, ids[2]: -300}


def test_unavailable_rate_stores_expense_as_degraded(db, trip, participants, resolver, cache):
    ids = [p.id for p in participants]
    expense = expense_service.create_expense(
        trip.id, ids[0], date(2025, 6, 2), 1000, "CHF", Equal(), ids, db, resolver=resolver, cache=cache
    )
    assert expense.fx_rate is None

    result = compute_balances(trip.id, db, resolver=resolver, cache=cache)
    assert result.degraded_expense_ids == [expense.id]
    assert all(b.amount.amount == 0 for b in result.balances)


def test_update_replaces_shares(db, trip, participants, cache):
    ids = [p.id for p in participants]
    expense = expense_service.create_expense(trip.id, ids[0], date(2025, 6, 2), 900, "EUR", Equal(), ids, db, cache=cache)
    before = compute_balances(trip.id, db, cache=cache)
    version = current_ledger_version(trip.id, db)

    updated = expense_service.update_expense(
        trip.id, expense.id, ids[1], date(2025, 6, 3), 10000,
        "EUR", Percentage({ids[0]: Decimal(60), ids[1]: Decimal(40)}), ids[:2], db, cache=cache
    )

    assert updated.payer_id == ids[1]
    assert share_amounts(updated) == [(ids[0], 6000), (ids[1], 4000)]
    assert db.query(ExpenseShare).filter(ExpenseShare.expense_id == expense.id).count() == 2
    assert current_ledger_version(trip.id, db) == version + 1
    after = compute_balances(trip.id, db, cache=cache)
    assert after is not before
    assert {b.participant_id: b.amount.amount for b in after.balances} == {ids[0]: -6000, ids[1]: 6000, ids[2]: 0}


def test_delete_expense(db, trip, participants, cache):
    ids = [p.id for p in participants]
    expense = expense_service.create_expense(trip.id, ids[0], date(2025, 6, 2), 900, "EUR", Equal(), ids, db, cache=cache)
    expense_service.delete_expense(trip.id, expense.id, db, cache=cache)

    assert expense_service.list_expenses(trip.id, db) == []
    assert db.query(ExpenseShare).count() == 0
    with pytest.raises(NotFound):
        expense_service.get_expense(trip.id, expense.id, db)


def test_recalculate_after_join_dates_change(db, trip, participants, cache):
    ids = [p.id for p in participants]
    expense = expense_service.create_expense(trip.id, ids[0], date(2025, 6, 2), 900, "EUR", Equal(), ids, db, cache=cache)
    assert share_amounts(expense) == [(ids[0], 300), (ids[1], 300), (ids[2], 300)]

    participants[2].join_start_date = date(2025, 6, 1)
    participants[2].join_end_date = date(2025, 6, 5)
    db.commit()

    recalculated = expense_service.recalculate_expense_shares(trip.id, expense.id, db, cache=cache)
    assert share_amounts(recalculated) == [(ids[0], 300), (ids[1], 300), (ids[2], 150)]
