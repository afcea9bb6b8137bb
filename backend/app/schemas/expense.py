"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import date, datetime
from decimal import Decimal
from app.core.money import normalize_currency
from app.models.expense import RAW_VALUE_PLACES, SplitRuleType
from app.services.share_calculator import Amount, Equal, Percentage, Shares, SplitRule

# Percentages and weights are stored with RAW_VALUE_PLACES decimals
RawValue = Annotated[Decimal, Field(decimal_places=RAW_VALUE_PLACES)]


class EqualSplit(BaseModel):
    """Split evenly between the listed participants."""
    type: Literal["equal"]
    participant_ids: List[int] = Field(..., min_length=1)

    def to_rule(self) -> SplitRule:
        return Equal()

    def participants(self) -> List[int]:
        return list(self.participant_ids)


class PercentageSplit(BaseModel):
    """participant_id -> percentage; must add up to 100."""
    type: Literal["percentage"]
    percentages: Dict[int, RawValue] = Field(..., min_length=1)

    def to_rule(self) -> SplitRule:
        return Percentage(dict(self.percentages))

    def participants(self) -> List[int]:
        return sorted(self.percentages)


class AmountSplit(BaseModel):
    """participant_id -> exact share in minor units; must add up to the expense amount."""
    type: Literal["amount"]
    amounts: Dict[int, int] = Field(..., min_length=1)

    def to_rule(self) -> SplitRule:
        return Amount(dict(self.amounts))

    def participants(self) -> List[int]:
        return sorted(self.amounts)


class SharesSplit(BaseModel):
    """participant_id -> relative weight."""
    type: Literal["shares"]
    weights: Dict[int, RawValue] = Field(..., min_length=1)

    def to_rule(self) -> SplitRule:
        return Shares(dict(self.weights))

    def participants(self) -> List[int]:
        return sorted(self.weights)


SplitSpec = Annotated[
    Union[EqualSplit, PercentageSplit, AmountSplit, SharesSplit],
    Field(discriminator="type")
]


class ExpenseCreate(BaseModel):
    """Schema for expense creation and full edits."""
    payer_id: int
    date: date
    amount: int = Field(..., gt=0, strict=True)  # Minor units
    currency: str
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    split: SplitSpec

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v):
        return normalize_currency(v)


class ExpenseUpdate(ExpenseCreate):
    """A full edit replaces every field and the split."""
    pass


class ExpenseShareResponse(BaseModel):
    """Schema for one participant's share."""
    participant_id: int
    split_rule: SplitRuleType
    raw_value: Optional[Decimal] = None
    share_amount: int  # Minor units in the expense's currency

    class Config:
        from_attributes = True


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    trip_id: int
    payer_id: int
    date: date
    amount: int
    currency: str
    fx_rate: Optional[Decimal] = None  # 1 unit of currency in the trip's base currency
    description: Optional[str] = None
    category: Optional[str] = None
    shares: List[ExpenseShareResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
