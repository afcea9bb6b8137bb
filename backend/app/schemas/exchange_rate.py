"""
Pydantic schemas for exchange rates.
"""
from pydantic import BaseModel
from datetime import date
from decimal import Decimal


class ExchangeRateResponse(BaseModel):
    """Schema for exchange rate response (1 from_currency = rate to_currency)."""
    from_currency: str
    to_currency: str
    date: date
    rate: Decimal
