"""
Shared FastAPI dependencies.
"""
from functools import lru_cache
from app.services.fx_service import FxRateResolver
from app.services.ledger_service import BalanceCache, balance_cache


@lru_cache
def get_fx_resolver() -> FxRateResolver:
    """Process-wide resolver so its rate cache is shared between requests."""
    return FxRateResolver()


def get_balance_cache() -> BalanceCache:
    return balance_cache
