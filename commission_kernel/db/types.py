"""
Module: commission_kernel.db.types
Responsibility: Money helpers shared by models, domain and services.
    Centralizes rounding and currency validation so every amount in the
    system is handled identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Every monetary amount is a Decimal stored as Numeric(38, 9)
      (see Base.type_annotation_map).
    - round_money() is the only rounding function for commission amounts.
      It rounds half-up and is applied to final values only.

Failure modes:
    - InvalidCurrencyError on an unknown ISO 4217 code.
"""

from decimal import ROUND_HALF_UP, Decimal

DEFAULT_ROUNDING = ROUND_HALF_UP

# Currencies whose minor unit is not the cent
_MINOR_UNITS: dict[str, int] = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "CLP": 0,
    "ISK": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}

ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "BHD", "BRL", "CLP", "CNY", "CZK", "DKK", "HKD", "HUF", "IDR", "ILS",
    "INR", "ISK", "JOD", "KRW", "KWD", "MXN", "MYR", "NOK", "OMR", "PHP",
    "PLN", "RON", "SAR", "SEK", "SGD", "THB", "TND", "TRY", "VND", "ZAR",
})


class InvalidCurrencyError(ValueError):
    """Raised when an invalid ISO 4217 currency code is provided."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """Return the upper-cased code, or raise InvalidCurrencyError."""
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))
    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized


def minor_units(currency: str) -> int:
    """Number of decimal places of the currency's minor unit."""
    return _MINOR_UNITS.get(currency.upper(), 2)


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with ROUND_HALF_UP by default.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)
