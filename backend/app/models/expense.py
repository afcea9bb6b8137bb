"""
Expense model for tracking spending.
"""
from sqlalchemy import Column, String, Numeric, Date, ForeignKey, Integer, Text, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum

# Decimal places kept for percentages and weights
RAW_VALUE_PLACES = 6


class SplitRuleType(str, enum.Enum):
    """How an expense total is divided between participants."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    AMOUNT = "amount"
    SHARES = "shares"


class Expense(BaseModel):
    """Expense model representing a single spending event."""
    __tablename__ = "expenses"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    payer_id = Column(Integer, ForeignKey("trip_participants.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Minor units in `currency`
    currency = Column(String(3), nullable=False)
    # Frozen at creation: 1 unit of `currency` = fx_rate units of the trip's base currency
    fx_rate = Column(Numeric(20, 10), nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="expenses")
    payer = relationship("TripParticipant", foreign_keys=[payer_id])
    shares = relationship(
        "ExpenseShare",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseShare.participant_id"
    )


class ExpenseShare(BaseModel):
    """One participant's computed share of an expense."""
    __tablename__ = "expense_shares"

    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("trip_participants.id"), nullable=False, index=True)
    split_rule = Column(SQLEnum(SplitRuleType), nullable=False)
    raw_value = Column(Numeric(20, RAW_VALUE_PLACES), nullable=True)  # Percentage, weight or amount as entered
    share_amount = Column(Integer, nullable=False)  # Minor units in the expense's currency

    # Relationships
    expense = relationship("Expense", back_populates="shares")

    __table_args__ = (
        UniqueConstraint('expense_id', 'participant_id', name='uq_expense_participant'),
    )
