"""
목표가 기준 가격 <-> 퍼센트 변환

모든 값은 Decimal 로 다루고, 결과는 소수 둘째 자리에서
ROUND_HALF_UP (0 에서 먼 쪽으로 반올림) 한다.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from stockwatch.core.exceptions import InvalidTarget, RangeInvalid, ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

DEFAULT_HIGH_PERCENTAGE = Decimal("10.00")
DEFAULT_LOW_PERCENTAGE = Decimal("-10.00")


def to_decimal(value) -> Decimal:
    """
    float 는 문자열을 거쳐 변환 (이진 부동소수 오차 방지).
    숫자가 아니거나 유한하지 않으면 ValidationError
    """
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid numeric value: {value!r}")
    # NaN, Infinity 는 비교/반올림이 불가능하다
    if not result.is_finite():
        raise ValidationError(f"Invalid numeric value: {value!r}")
    return result


def round_cents(value) -> Decimal:
    value = to_decimal(value)
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Numeric value out of range: {value}")


def price_from_percentage(target, pct) -> Decimal:
    target = to_decimal(target)
    pct = to_decimal(pct)
    return round_cents(target * (1 + pct / HUNDRED))


def percentage_from_price(target, price) -> Decimal:
    target = to_decimal(target)
    price = to_decimal(price)
    if target <= 0:
        raise InvalidTarget()
    return round_cents((price - target) / target * HUNDRED)


def validate_range(lower, upper) -> None:
    if lower is None or upper is None:
        raise ValidationError("Both low and high prices are required")
    # 저장되는 값(센트 단위)으로 비교
    if round_cents(lower) >= round_cents(upper):
        raise RangeInvalid()


def validate_preference_range(high_pct, low_pct) -> None:
    if round_cents(high_pct) <= round_cents(low_pct):
        raise ValidationError("High percentage must be greater than low percentage")


def default_thresholds(
    price,
    high_pct=DEFAULT_HIGH_PERCENTAGE,
    low_pct=DEFAULT_LOW_PERCENTAGE,
) -> tuple[Decimal, Decimal]:
    """선호 퍼센트로부터 (하한가, 상한가) 계산"""
    lower = price_from_percentage(price, low_pct)
    upper = price_from_percentage(price, high_pct)
    validate_range(lower, upper)
    return lower, upper


def derive_percentages(target, lower, upper) -> tuple[Decimal | None, Decimal | None]:
    """
    (하한 퍼센트, 상한 퍼센트) 반환.
    목표가가 0 이하면 퍼센트를 정의할 수 없으므로 (None, None).
    """
    if to_decimal(target) <= 0:
        return None, None
    return percentage_from_price(target, lower), percentage_from_price(target, upper)


def change_from_target(target, price) -> tuple[Decimal, Decimal | None]:
    """목표가 대비 (금액 변화, 퍼센트 변화)"""
    dollar = round_cents(to_decimal(price) - to_decimal(target))
    if to_decimal(target) <= 0:
        return dollar, None
    return dollar, percentage_from_price(target, price)
