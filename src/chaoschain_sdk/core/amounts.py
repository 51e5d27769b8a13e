"""Decimal amount handling and protocol fee arithmetic."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Optional, Union

from .errors import PaymentError, ValidationError

AmountLike = Union[str, int, Decimal]

NATIVE_DECIMALS = 18
STABLECOIN_DECIMALS = 6

# Currencies settled through an ERC-20 contract rather than value transfers
TOKEN_CURRENCIES = {"USDC": STABLECOIN_DECIMALS}

NATIVE_CURRENCIES = {"ETH", "NATIVE"}


def to_decimal(amount: AmountLike) -> Decimal:
    """Parse a decimal amount.

    Args:
        amount: Amount as a decimal string, int or Decimal

    Returns:
        Parsed non-negative Decimal

    Raises:
        ValidationError: If the amount is not a finite, non-negative number
    """
    if isinstance(amount, float):
        raise ValidationError("Amounts must be decimal strings, not floats")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Invalid amount: {amount!r}")
    return value


def is_native_currency(currency: str, native_symbol: Optional[str] = None) -> bool:
    """Check whether a currency is paid with value transfers."""
    symbol = currency.upper()
    if symbol in NATIVE_CURRENCIES:
        return True
    return native_symbol is not None and symbol == native_symbol.upper()


def currency_decimals(currency: str, native_symbol: Optional[str] = None) -> int:
    """Get the on-chain decimal precision of a currency.

    Raises:
        PaymentError: If the currency is not supported
    """
    if is_native_currency(currency, native_symbol):
        return NATIVE_DECIMALS
    decimals = TOKEN_CURRENCIES.get(currency.upper())
    if decimals is None:
        raise PaymentError(f"Unsupported currency: {currency}")
    return decimals


def parse_units(amount: AmountLike, decimals: int) -> int:
    """Convert a decimal amount to integer minor units.

    Precision beyond ``decimals`` is truncated.
    """
    value = to_decimal(amount)
    scaled = (value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Render integer minor units as a decimal string.

    Keeps at least one fractional digit and strips trailing zeros, so
    ``format_units(10_000_000, 6)`` is ``"10.0"``.
    """
    if value < 0:
        return "-" + format_units(-value, decimals)
    whole, frac = divmod(value, 10**decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{whole}.{frac_str}"


def validate_fee_percentage(percentage: Union[int, float, Decimal]) -> Decimal:
    """Validate a fee percentage.

    Raises:
        ValidationError: If the percentage is outside [0, 100]
    """
    try:
        value = Decimal(str(percentage))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid fee percentage: {percentage!r}")
    if not value.is_finite() or value < 0 or value > 100:
        raise ValidationError(
            f"Fee percentage must be between 0 and 100, got {percentage}"
        )
    return value


def calculate_fee_units(amount_units: int, percentage: Union[int, float, Decimal]) -> int:
    """Compute the protocol fee in minor units, truncated."""
    pct = validate_fee_percentage(percentage)
    fee = (Decimal(amount_units) * pct / Decimal(100)).to_integral_value(
        rounding=ROUND_DOWN
    )
    return int(fee)
