from decimal import Decimal

import pytest

from stockwatch.core.exceptions import InvalidTarget, RangeInvalid, ValidationError
from stockwatch.core.threshold_math import (
    change_from_target,
    default_thresholds,
    derive_percentages,
    percentage_from_price,
    price_from_percentage,
    round_cents,
    to_decimal,
    validate_preference_range,
    validate_range,
)


def test_percentage_from_price_examples():
    assert percentage_from_price(100, 90) == Decimal("-10.00")
    assert percentage_from_price(100, 120) == Decimal("20.00")


def test_price_from_percentage_examples():
    assert price_from_percentage(100, -10) == Decimal("90.00")
    assert price_from_percentage(100, "12.5") == Decimal("112.50")


def test_rounding_is_half_up_away_from_zero():
    assert price_from_percentage(10, "0.05") == Decimal("10.01")
    assert round_cents("-2.345") == Decimal("-2.35")
    assert percentage_from_price(3, 2) == Decimal("-33.33")


SMALL_TARGETS = ["0.5", "1", "3", "7.77", "19.99", "42.42", "66.67", "99.99", "100"]
AWKWARD_PRICES = ["0.01", "0.37", "1.99", "2", "3.33", "10.01", "49.99", "66.66", "100.01", "123.45", "999.99"]
LARGE_TARGETS = ["100", "250", "1234.56", "98765.43"]
PERCENTAGES = ["-99.99", "-33.33", "-10", "-0.01", "0", "0.01", "0.05", "12.34", "66.67", "250"]
ONE_CENT = Decimal("0.01")


@pytest.mark.parametrize("target", SMALL_TARGETS)
@pytest.mark.parametrize("price", AWKWARD_PRICES)
def test_price_recovered_within_one_cent(target, price):
    pct = percentage_from_price(target, price)
    assert abs(price_from_percentage(target, pct) - Decimal(price)) <= ONE_CENT


@pytest.mark.parametrize("target", LARGE_TARGETS)
@pytest.mark.parametrize("price", AWKWARD_PRICES)
def test_price_recovery_error_is_bounded_by_percentage_step(target, price):
    # 퍼센트가 0.01% 단위라 가격 오차는 목표가의 0.005% + 반 센트를 넘지 않는다
    pct = percentage_from_price(target, price)
    bound = Decimal(target) * Decimal("0.00005") + Decimal("0.005")
    assert abs(price_from_percentage(target, pct) - Decimal(price)) <= bound


@pytest.mark.parametrize("target", LARGE_TARGETS)
@pytest.mark.parametrize("pct", PERCENTAGES)
def test_percentage_recovered_within_one_hundredth(target, pct):
    price = price_from_percentage(target, pct)
    assert abs(percentage_from_price(target, price) - Decimal(pct)) <= ONE_CENT


@pytest.mark.parametrize("target, pct", [("100", "12.34"), ("250", "-7.50"), ("42.42", "0.00")])
def test_exact_round_trip_examples(target, pct):
    price = price_from_percentage(target, pct)
    assert percentage_from_price(target, price) == Decimal(pct)


def test_zero_target_has_no_percentage():
    with pytest.raises(InvalidTarget):
        percentage_from_price(0, 10)
    assert derive_percentages(0, 1, 2) == (None, None)


def test_default_thresholds_from_preferences():
    assert default_thresholds(50) == (Decimal("45.00"), Decimal("55.00"))
    assert default_thresholds(200, "5", "-2.5") == (Decimal("195.00"), Decimal("210.00"))


def test_validate_range():
    validate_range(Decimal("1.00"), Decimal("1.01"))
    with pytest.raises(RangeInvalid):
        validate_range(10, 10)
    with pytest.raises(RangeInvalid):
        validate_range(11, 10)
    with pytest.raises(ValidationError):
        validate_range(None, 10)


def test_validate_preference_range():
    validate_preference_range(10, -10)
    with pytest.raises(ValidationError):
        validate_preference_range(-5, -5)


def test_float_input_goes_through_str():
    assert to_decimal(0.1) == Decimal("0.1")
    with pytest.raises(ValidationError):
        to_decimal("not-a-number")


@pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-Infinity", float("nan"), float("inf"), Decimal("NaN")])
def test_non_finite_values_are_rejected(value):
    with pytest.raises(ValidationError):
        to_decimal(value)
    with pytest.raises(ValidationError):
        validate_range(value, 5)
    with pytest.raises(ValidationError):
        price_from_percentage(100, value)


def test_out_of_range_magnitude_is_validation_error():
    with pytest.raises(ValidationError):
        round_cents("1e40")


def test_range_is_checked_at_cent_precision():
    with pytest.raises(RangeInvalid):
        validate_range("10.001", "10.004")
    validate_range("10.004", "10.005")


def test_change_from_target():
    assert change_from_target(100, 110) == (Decimal("10.00"), Decimal("10.00"))
    assert change_from_target(0, 5) == (Decimal("5.00"), None)
