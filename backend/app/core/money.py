"""
Money value type and rounding helpers.

All amounts are integers in minor units. Every place that has to turn a
fractional value back into minor units goes through ``round_minor`` so the
whole engine shares one rounding mode.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
import re

ROUNDING = ROUND_HALF_EVEN

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_currency(code: str) -> str:
    """Upper-case and validate an ISO 4217 currency code."""
    if not isinstance(code, str):
        raise ValueError(f"Invalid currency code: {code!r}")
    code = code.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValueError(f"Invalid currency code: {code!r}")
    return code


def round_minor(value) -> int:
    """Round a Decimal (or int) to whole minor units, half to even."""
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUNDING))


def convert_minor(amount: int, rate: Decimal) -> int:
    """Convert an integer minor-unit amount with a rate (1 source = rate target)."""
    if rate == 1:
        return amount
    return round_minor(Decimal(amount) * Decimal(rate))


@dataclass(frozen=True)
class Money:
    """An integer amount of minor units tagged with a currency."""
    amount: int
    currency: str

    def __post_init__(self):
        # bool is an int subclass; neither it nor float is an acceptable amount
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Money amount must be an integer of minor units, got {self.amount!r}")
        object.__setattr__(self, "currency", normalize_currency(self.currency))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(0, currency)

    def _require_same_currency(self, other: "Money"):
        if other.currency != self.currency:
            raise ValueError(f"Currency mismatch: {self.currency} vs {other.currency}")

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._require_same_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.amount), self.currency)

    def is_zero(self) -> bool:
        return self.amount == 0

    def convert(self, rate: Decimal, to_currency: str) -> "Money":
        """Convert to another currency using ``rate`` (1 self.currency = rate to_currency)."""
        to_currency = normalize_currency(to_currency)
        if to_currency == self.currency:
            return self
        return Money(convert_minor(self.amount, rate), to_currency)

    def to_dict(self) -> dict:
        return {"amount": self.amount, "currency": self.currency}

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"
