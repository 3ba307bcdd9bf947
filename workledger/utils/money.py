# workledger/utils/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from workledger.errors import InvalidAmountError

# Every supported currency (GHS, USD, EUR, GBP, NGN) has two decimal places.
MINOR_UNITS = 2
_SCALE = 10 ** MINOR_UNITS
_QUANT = Decimal(1).scaleb(-MINOR_UNITS)

CURRENCIES = {
    "GHS": {"name": "Ghanaian Cedi", "symbol": "₵"},
    "USD": {"name": "US Dollar", "symbol": "$"},
    "EUR": {"name": "Euro", "symbol": "€"},
    "GBP": {"name": "British Pound", "symbol": "£"},
    "NGN": {"name": "Nigerian Naira", "symbol": "₦"},
}


def to_decimal(value) -> Decimal:
    """
    Parse user input (str, int, float, Decimal) into a Decimal.
    Floats go through str() so 40.1 stays 40.1 and not 40.099999...
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError("Please enter a valid payment amount.")
    if isinstance(value, float):
        value = str(value)
    try:
        d = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError("Please enter a valid payment amount.") from None
    if not d.is_finite():
        raise InvalidAmountError("Amount must be a finite number.")
    return d


def to_minor(value) -> int:
    """Convert a currency amount to integer minor units, rejecting sub-cent precision."""
    d = to_decimal(value)
    try:
        cents = d.quantize(_QUANT)
    except InvalidOperation:
        # More digits than the decimal context carries.
        raise InvalidAmountError("Amount is too large.") from None
    if d != cents:
        raise InvalidAmountError(f"Amount cannot have more than {MINOR_UNITS} decimal places.")
    return int(d * _SCALE)


def positive_minor(value) -> int:
    """Like to_minor() but the amount must be strictly positive."""
    minor = to_minor(value)
    if minor <= 0:
        raise InvalidAmountError("Please enter a valid payment amount.")
    return minor


def from_minor(minor: int | None) -> Decimal:
    return (Decimal(minor or 0) / _SCALE).quantize(_QUANT)


def format_amount(minor: int | None, currency: str | None = None) -> str:
    symbol = CURRENCIES.get((currency or "").upper(), {}).get("symbol", "")
    return f"{symbol}{from_minor(minor):,.2f}"
