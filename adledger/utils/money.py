"""Currency helpers: decimal amounts to integer minor units and back."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# ISO 4217 minor-unit exponents that differ from the usual 2
CURRENCY_EXPONENTS: dict[str, int] = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
}
DEFAULT_EXPONENT = 2


def currency_exponent(currency: str | None) -> int:
    if not currency:
        return DEFAULT_EXPONENT
    return CURRENCY_EXPONENTS.get(currency.upper(), DEFAULT_EXPONENT)


def to_minor_units(amount: str | int | float | Decimal | None, currency: str | None = None) -> int:
    """
    Convert a decimal amount to integer minor units, rounding half up.

    "12.345" USD -> 1235, "1500" JPY -> 1500. None and "" count as zero.
    Raises ValueError for non-numeric input.
    """
    if amount is None or amount == "":
        return 0
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid monetary amount: {amount!r}")

    scaled = value.scaleb(currency_exponent(currency))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int, currency: str | None = None) -> float:
    return amount_minor / (10 ** currency_exponent(currency))
