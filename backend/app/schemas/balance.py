"""
Pydantic schemas for money and net balances.
"""
from pydantic import BaseModel
from typing import List
from app.core.money import Money


class MoneySchema(BaseModel):
    """Integer minor units tagged with an ISO 4217 code."""
    amount: int
    currency: str

    @classmethod
    def from_money(cls, money: Money) -> "MoneySchema":
        return cls(amount=money.amount, currency=money.currency)


class NetBalanceResponse(BaseModel):
    """Schema for a participant's net balance (positive = is owed)."""
    participant_id: int
    balance: MoneySchema


class BalancesResponse(BaseModel):
    """Schema for a trip's balances."""
    trip_id: int
    base_currency: str
    balances: List[NetBalanceResponse]
    degraded_expense_ids: List[int] = []  # Expenses left out for lack of an exchange rate
