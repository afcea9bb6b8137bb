"""Models package - Import all models for SQLAlchemy registration."""
from app.models.trip import Trip, TripParticipant
from app.models.expense import Expense, ExpenseShare, SplitRuleType
from app.models.exchange_rate import FxRate
from app.models.settlement import Settlement, SettlementStatus

__all__ = [
    "Trip",
    "TripParticipant",
    "Expense",
    "ExpenseShare",
    "SplitRuleType",
    "FxRate",
    "Settlement",
    "SettlementStatus",
]
