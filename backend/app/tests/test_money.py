"""
Tests for the Money value type and rounding helpers.
"""
import pytest
from decimal import Decimal
from app.core.money import Money, convert_minor, normalize_currency, round_minor


def test_money_requires_integer_minor_units():
    """Floats and bools are never accepted as amounts."""
    with pytest.raises(ValueError):
        Money(10.5, "EUR")
    with pytest.raises(ValueError):
        Money(True, "EUR")


def test_currency_is_normalized():
    assert Money(100, "eur").currency == "EUR"
    with pytest.raises(ValueError):
        normalize_currency("EURO")


def test_arithmetic_rejects_mixed_currencies():
    assert Money(100, "EUR") + Money(50, "EUR") == Money(150, "EUR")
    assert Money(100, "EUR") - Money(150, "EUR") == Money(-50, "EUR")
    with pytest.raises(ValueError):
        Money(100, "EUR") + Money(100, "USD")


def test_rounding_is_half_to_even():
    assert round_minor(Decimal("2.5")) == 2
    assert round_minor(Decimal("3.5")) == 4
    assert round_minor(Decimal("-2.5")) == -2
    assert convert_minor(5, Decimal("0.5")) == 2
    assert convert_minor(7, Decimal("0.5")) == 4


def test_convert_same_currency_is_identity():
    money = Money(1234, "USD")
    assert money.convert(Decimal("0.9"), "USD") is money
    assert money.convert(Decimal("0.9"), "EUR") == Money(1111, "EUR")
