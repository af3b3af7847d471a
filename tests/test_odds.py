from decimal import Decimal

import pytest

from prop_engine.odds import (
    OddsConversionError,
    american_to_decimal,
    american_to_probability,
    format_american,
    implied_probability,
    is_valid_american,
)


def test_american_to_decimal_positive():
    assert american_to_decimal(110) == Decimal("2.1")


def test_american_to_decimal_negative():
    assert american_to_decimal(-200) == Decimal("1.5")


def test_american_to_probability():
    assert american_to_probability(400) == Decimal("0.2000")
    assert american_to_probability(-180) == Decimal("0.6429")


@pytest.mark.parametrize("price", [-99, 0, 50, 99])
def test_prices_between_minus_and_plus_hundred_are_invalid(price):
    assert is_valid_american(price) is False
    with pytest.raises(OddsConversionError):
        american_to_decimal(price)
    assert implied_probability(price) is None


def test_implied_probability_handles_missing_prices():
    assert implied_probability(None) is None


def test_format_american():
    assert format_american(130) == "+130"
    assert format_american(-120) == "-120"
    assert format_american(None) == "n/a"
