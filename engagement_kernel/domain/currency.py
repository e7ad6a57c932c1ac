"""
Currency -- ISO 4217 codes and minor-unit conversion.

Responsibility:
    Validates the currency quoted at review and converts a major-unit price
    into the integer minor units the payment provider expects.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - validate_currency() rejects anything that is not a recognized
      three-letter code.
    - to_minor_units() derives the exponent from the currency, so
      zero-decimal currencies (JPY, KRW, ...) are never multiplied by 100.
"""

from decimal import ROUND_HALF_UP, Decimal

ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "ARS", "BDT", "BGN", "BHD", "BRL", "CLP", "CNY", "COP", "CZK",
    "DKK", "EGP", "HKD", "HUF", "IDR", "ILS", "INR", "ISK", "JOD", "KES",
    "KRW", "KWD", "MAD", "MXN", "MYR", "NGN", "NOK", "OMR", "PEN", "PHP",
    "PKR", "PLN", "QAR", "RON", "RSD", "SAR", "SEK", "SGD", "THB", "TND",
    "TRY", "TWD", "UAH", "UGX", "VND", "XAF", "XOF", "ZAR",
})

# Currencies whose minor unit exponent differs from 2
_MINOR_UNIT_EXPONENTS: dict[str, int] = {
    "CLP": 0, "ISK": 0, "JPY": 0, "KRW": 0, "UGX": 0, "VND": 0,
    "XAF": 0, "XOF": 0,
    "BHD": 3, "JOD": 3, "KWD": 3, "OMR": 3, "TND": 3,
}


def validate_currency(code: str) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Returns:
        The upper-cased code.

    Raises:
        ValueError: If the code is not a recognized ISO 4217 currency.
    """
    if not isinstance(code, str):
        raise ValueError(f"Currency code must be a string, got {type(code).__name__}")
    normalized = code.strip().upper()
    if normalized not in ISO_4217_CURRENCIES:
        raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
    return normalized


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places of the currency's minor unit."""
    return _MINOR_UNIT_EXPONENTS.get(currency.upper(), 2)


def to_minor_units(amount: Decimal, currency: str) -> int:
    """
    Convert a major-unit amount into integer minor units.

    Example:
        to_minor_units(Decimal("500"), "USD") -> 50000
        to_minor_units(Decimal("500"), "JPY") -> 500
    """
    exponent = minor_unit_exponent(currency)
    scaled = (amount * (Decimal(10) ** exponent)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(scaled)
