"""Tests for decimal amounts and protocol fee arithmetic."""

from decimal import Decimal

import pytest

from chaoschain_sdk.core.amounts import (
    calculate_fee_units,
    currency_decimals,
    format_units,
    parse_units,
    to_decimal,
    validate_fee_percentage,
)
from chaoschain_sdk.core.errors import PaymentError, ValidationError


def test_parse_and_format_units():
    """Test conversion between decimal strings and minor units."""
    assert parse_units("10.0", 6) == 10_000_000
    assert parse_units("0.000001", 6) == 1
    assert parse_units("1", 18) == 10**18
    assert format_units(10_000_000, 6) == "10.0"
    assert format_units(250_000, 6) == "0.25"
    assert format_units(10**18 + 5 * 10**17, 18) == "1.5"


def test_parse_units_truncates_extra_precision():
    """Test that digits beyond the token precision are dropped."""
    assert parse_units("1.1234567", 6) == 1_123_456


def test_to_decimal_rejects_floats_and_negatives():
    """Test that only exact, non-negative amounts are accepted."""
    assert to_decimal("2.50") == Decimal("2.50")
    assert to_decimal(3) == Decimal(3)

    with pytest.raises(ValidationError):
        to_decimal(1.5)
    with pytest.raises(ValidationError):
        to_decimal("-1")
    with pytest.raises(ValidationError):
        to_decimal("ten")
    with pytest.raises(ValidationError):
        to_decimal("NaN")


def test_fee_is_floored():
    """Test fee calculation in minor units."""
    # 2.5% of 10 USDC
    assert calculate_fee_units(10_000_000, 2.5) == 250_000
    # 2.5% of 0.000039 USDC is 0.975 units, floored to 0
    assert calculate_fee_units(39, 2.5) == 0
    assert calculate_fee_units(1_000, 0) == 0
    assert calculate_fee_units(1_000, 100) == 1_000


def test_fee_percentage_bounds():
    """Test that fee percentages outside [0, 100] are rejected."""
    assert validate_fee_percentage(0) == Decimal("0")
    assert validate_fee_percentage(100) == Decimal("100")

    with pytest.raises(ValidationError):
        validate_fee_percentage(-0.1)
    with pytest.raises(ValidationError):
        validate_fee_percentage(100.5)


def test_currency_decimals():
    """Test precision lookup per currency."""
    assert currency_decimals("USDC") == 6
    assert currency_decimals("usdc") == 6
    assert currency_decimals("ETH") == 18
    assert currency_decimals("HBAR", native_symbol="HBAR") == 18

    with pytest.raises(PaymentError):
        currency_decimals("DOGE")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
