"""
Settlement model for suggested and confirmed payments between participants.
"""
from sqlalchemy import (
    Column, String, Text, ForeignKey, Integer, DateTime, CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum


class SettlementStatus(str, enum.Enum):
    """Settlement status enumeration."""
    PENDING = "pending"
    SETTLED = "settled"


class Settlement(BaseModel):
    """A payment from one participant to another, proposed by the optimizer."""
    __tablename__ = "settlements"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    from_participant_id = Column(Integer, ForeignKey("trip_participants.id"), nullable=False, index=True)
    to_participant_id = Column(Integer, ForeignKey("trip_participants.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Minor units in `currency`
    currency = Column(String(3), nullable=False)
    status = Column(SQLEnum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    settled_by = Column(Integer, nullable=True)  # User id from the external user store
    note = Column(Text, nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="settlements")

    __table_args__ = (
        CheckConstraint("from_participant_id != to_participant_id", name="ck_settlement_different_parties"),
        CheckConstraint("amount > 0", name="ck_settlement_positive_amount"),
        # Enum columns store member names
        CheckConstraint(
            "(status = 'SETTLED' AND settled_at IS NOT NULL AND settled_by IS NOT NULL) OR "
            "(status = 'PENDING' AND settled_at IS NULL AND settled_by IS NULL)",
            name="ck_settlement_settled_fields"
        ),
    )
