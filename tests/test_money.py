from decimal import Decimal

import pytest

from adledger.utils.money import currency_exponent, to_major_units, to_minor_units


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        ("12.34", "USD", 1234),
        ("12.345", "USD", 1235),
        ("12.344", "USD", 1234),
        ("0.005", "EUR", 1),
        ("1500", "JPY", 1500),
        ("1500.5", "JPY", 1501),
        ("1.2345", "KWD", 1235),
        ("0", "USD", 0),
        ("", "USD", 0),
        (None, "USD", 0),
        (Decimal("2.5"), None, 250),
    ],
)
def test_to_minor_units_rounds_half_up(amount, currency, expected):
    assert to_minor_units(amount, currency) == expected


def test_half_up_differs_from_bankers_rounding():
    # round-half-even would give 2 here
    assert to_minor_units("0.025", "USD") == 3


@pytest.mark.parametrize("amount", ["abc", "12,34", "NaN", "Infinity"])
def test_to_minor_units_rejects_non_decimal(amount):
    with pytest.raises(ValueError):
        to_minor_units(amount, "USD")


def test_currency_exponent_defaults_to_two():
    assert currency_exponent("usd") == 2
    assert currency_exponent(None) == 2
    assert currency_exponent("krw") == 0
    assert currency_exponent("BHD") == 3


def test_to_major_units():
    assert to_major_units(1234, "USD") == 12.34
    assert to_major_units(1500, "JPY") == 1500
