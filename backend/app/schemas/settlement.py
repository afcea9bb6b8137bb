"""
Pydantic schemas for Settlement entity.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from app.models.settlement import SettlementStatus
from app.schemas.balance import MoneySchema


class TransferResponse(BaseModel):
    """Schema for a single suggested transfer."""
    from_participant_id: int
    to_participant_id: int
    amount: MoneySchema


class SettlementProposalResponse(BaseModel):
    """Schema for the current settlement plan (not persisted)."""
    trip_id: int
    base_currency: str
    transfers: List[TransferResponse]
    degraded_expense_ids: List[int] = []
    summary: str


class SettlementResponse(BaseModel):
    """Schema for a recorded settlement."""
    id: int
    trip_id: int
    from_participant_id: int
    to_participant_id: int
    amount: MoneySchema
    status: SettlementStatus
    settled_at: Optional[datetime] = None
    settled_by: Optional[int] = None
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MarkSettledRequest(BaseModel):
    """Schema for confirming a settlement was paid."""
    settled_by: int
    note: Optional[str] = Field(None, max_length=500)
