from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import ValidationError
from domain.coupon import evaluator
from domain.coupon.entity import Coupon, CouponScope, CouponStatus, CouponType
from domain.coupon.evaluator import CouponContext, RejectReason


NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _coupon(**overrides) -> Coupon:
    fields = dict(
        id=1,
        code=" save200 ",
        name="Save 200",
        type=CouponType.FIXED,
        value=Decimal("200"),
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=1),
        min_order_amount=Decimal("500"),
    )
    fields.update(overrides)
    return Coupon(**fields)


def _ctx(**overrides) -> CouponContext:
    fields = dict(user_id=7, order_amount=Decimal("900.00"), service_id=11, category_id=3, vendor_id=2, now=NOW)
    fields.update(overrides)
    return CouponContext(**fields)


def test_code_is_normalised():
    assert _coupon().code == "SAVE200"


def test_fixed_coupon_applies():
    result = evaluator.evaluate(_coupon(), _ctx())
    assert result.applicable
    assert result.amount == Decimal("200.00")


def test_percentage_coupon_respects_cap():
    coupon = _coupon(type=CouponType.PERCENTAGE, value=Decimal("50"), max_discount_amount=Decimal("120"))
    assert evaluator.calculate_discount(coupon, Decimal("900")).amount == Decimal("120.00")


def test_percentage_over_100_rejected():
    with pytest.raises(ValidationError):
        _coupon(type=CouponType.PERCENTAGE, value=Decimal("101"))


def test_discount_never_exceeds_order_amount():
    result = evaluator.calculate_discount(_coupon(value=Decimal("1000")), Decimal("300"))
    assert result.amount == Decimal("300.00")


def test_zero_discount_is_reported_not_silent():
    coupon = _coupon(type=CouponType.FREE_DELIVERY, value=Decimal("0"))
    result = evaluator.calculate_discount(coupon, Decimal("900"))
    assert not result.applicable
    assert result.reason == RejectReason.NO_DISCOUNT


@pytest.mark.parametrize(
    "coupon_kwargs,ctx_kwargs,reason",
    [
        ({"status": CouponStatus.INACTIVE}, {}, RejectReason.INACTIVE),
        ({"start_date": NOW + timedelta(hours=1)}, {}, RejectReason.NOT_STARTED),
        ({"end_date": NOW - timedelta(hours=1)}, {}, RejectReason.EXPIRED),
        ({"usage_limit": 5, "usage_count": 5}, {}, RejectReason.USAGE_LIMIT_REACHED),
        ({}, {"user_usage_count": 1}, RejectReason.USER_LIMIT_REACHED),
        ({}, {"order_amount": Decimal("499.99")}, RejectReason.MIN_ORDER_NOT_MET),
        ({"is_first_order_only": True}, {"user_order_count": 2}, RejectReason.FIRST_ORDER_ONLY),
        (
            {"applicable_for": CouponScope.SPECIFIC_USERS, "applicable_users": [99]},
            {},
            RejectReason.NOT_APPLICABLE_USER,
        ),
        (
            {"applicable_for": CouponScope.SPECIFIC_SERVICES, "applicable_services": [12]},
            {},
            RejectReason.NOT_APPLICABLE_SERVICE,
        ),
        (
            {"applicable_for": CouponScope.SPECIFIC_CATEGORIES, "applicable_categories": [4]},
            {},
            RejectReason.NOT_APPLICABLE_CATEGORY,
        ),
        ({"applicable_vendors": [8]}, {}, RejectReason.NOT_APPLICABLE_VENDOR),
    ],
)
def test_rejection_reasons(coupon_kwargs, ctx_kwargs, reason):
    result = evaluator.evaluate(_coupon(**coupon_kwargs), _ctx(**ctx_kwargs))
    assert not result.applicable
    assert result.amount == Decimal("0.00")
    assert result.reason == reason
    assert result.message


def test_unlimited_usage_when_limit_is_zero():
    coupon = _coupon(usage_limit=0, usage_count=10_000)
    assert evaluator.validate(coupon, _ctx()).ok


def test_user_limit_zero_means_no_per_user_cap():
    coupon = _coupon(user_usage_limit=0)
    assert evaluator.validate(coupon, _ctx(user_usage_count=12)).ok


def test_first_failure_wins():
    coupon = _coupon(status=CouponStatus.INACTIVE, end_date=NOW - timedelta(days=1))
    assert evaluator.validate(coupon, _ctx(order_amount=Decimal("1"))).reason == RejectReason.INACTIVE
