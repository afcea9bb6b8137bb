"""
Exchange rate model for currency conversion.
"""
from sqlalchemy import Column, String, Date, Numeric, UniqueConstraint
from app.db.base import BaseModel


class FxRate(BaseModel):
    """Persisted rate for a currency pair on a date (1 from_currency = rate to_currency)."""
    __tablename__ = "fx_rates"

    from_currency = Column(String(3), nullable=False)
    to_currency = Column(String(3), nullable=False)
    date = Column(Date, nullable=False, index=True)
    rate = Column(Numeric(20, 10), nullable=False)

    # Unique constraint: one rate per currency pair per date
    __table_args__ = (
        UniqueConstraint('from_currency', 'to_currency', 'date', name='uq_fx_pair_date'),
    )
