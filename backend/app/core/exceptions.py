"""
Domain exceptions for ledger, split and settlement errors.
"""


class LedgerError(Exception):
    """Base exception for all ledger engine errors."""

    pass


class InvalidSplit(LedgerError):
    """Raised when a split rule or its participant list is malformed."""

    pass


class ShareMismatch(InvalidSplit):
    """Raised when custom shares or percentages don't add up to the expense total."""

    def __init__(self, expected, actual, message: str = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"Shares sum to {actual}, expected {expected}"
        )


class RateUnavailable(LedgerError):
    """Raised when no exchange rate can be resolved for a currency pair and date.

    This is a soft failure: callers exclude the affected expense instead of
    aborting the whole computation.
    """

    def __init__(self, from_currency: str, to_currency: str, on_date, reason: str = None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.on_date = on_date
        self.reason = reason
        message = f"No rate for {from_currency}->{to_currency} on {on_date}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InternalInconsistency(LedgerError):
    """Raised when balances or settlements violate a zero-sum guarantee."""

    pass


class NotFound(LedgerError):
    """Raised when a referenced trip, expense, participant or settlement is missing."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class SnapshotConflict(LedgerError):
    """Raised when a trip's ledger kept changing while balances were being computed."""

    pass
