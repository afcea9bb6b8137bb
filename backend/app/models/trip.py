"""
Trip and participant models mirrored from the trip store.
"""
from sqlalchemy import Column, String, Date, ForeignKey, Integer
from sqlalchemy.orm import relationship
from app.core.config import settings
from app.db.base import BaseModel


class Trip(BaseModel):
    """Trip model: date range, base currency and ledger version."""
    __tablename__ = "trips"

    name = Column(String(200), nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    base_currency = Column(String(3), nullable=False, default=settings.FX_BASE_CURRENCY)
    # Bumped on every expense/share/settlement mutation; guards balance snapshots
    ledger_version = Column(Integer, nullable=False, default=0)

    # Relationships
    participants = relationship("TripParticipant", back_populates="trip", cascade="all, delete-orphan")
    expenses = relationship("Expense", back_populates="trip", cascade="all, delete-orphan")
    settlements = relationship("Settlement", back_populates="trip", cascade="all, delete-orphan")


class TripParticipant(BaseModel):
    """A user taking part in a trip, optionally for a sub-range of its days."""
    __tablename__ = "trip_participants"

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)  # Owned by the external user store
    join_start_date = Column(Date, nullable=True)  # Inclusive; both unset = whole trip
    join_end_date = Column(Date, nullable=True)

    # Relationships
    trip = relationship("Trip", back_populates="participants")
