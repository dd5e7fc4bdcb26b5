"""
Coupon evaluation: pure functions over coupon rules and an order context.

``validate`` answers "may this coupon be used here?" with a reason code,
``calculate_discount`` answers "how much?" with an explicit result so a zero
discount is never confused with a rejected coupon.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from domain.common.clock import utcnow
from domain.common.money import ZERO, to_money

from .entity import Coupon, CouponScope, CouponStatus, CouponType


class RejectReason:
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    USER_LIMIT_REACHED = "user_limit_reached"
    MIN_ORDER_NOT_MET = "min_order_not_met"
    FIRST_ORDER_ONLY = "first_order_only"
    NOT_APPLICABLE_USER = "not_applicable_user"
    NOT_APPLICABLE_SERVICE = "not_applicable_service"
    NOT_APPLICABLE_CATEGORY = "not_applicable_category"
    NOT_APPLICABLE_VENDOR = "not_applicable_vendor"
    NO_DISCOUNT = "no_discount"


REASON_MESSAGES = {
    RejectReason.INACTIVE: "Coupon is not active",
    RejectReason.NOT_STARTED: "Coupon is not valid yet",
    RejectReason.EXPIRED: "Coupon has expired",
    RejectReason.USAGE_LIMIT_REACHED: "Coupon usage limit reached",
    RejectReason.USER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
    RejectReason.MIN_ORDER_NOT_MET: "Order amount is below the coupon minimum",
    RejectReason.FIRST_ORDER_ONLY: "Coupon is only valid on your first order",
    RejectReason.NOT_APPLICABLE_USER: "Coupon is not available for your account",
    RejectReason.NOT_APPLICABLE_SERVICE: "Coupon does not apply to this service",
    RejectReason.NOT_APPLICABLE_CATEGORY: "Coupon does not apply to this category",
    RejectReason.NOT_APPLICABLE_VENDOR: "Coupon does not apply to this vendor",
    RejectReason.NO_DISCOUNT: "Coupon gives no discount on this order",
}


@dataclass(frozen=True)
class CouponContext:
    user_id: int
    order_amount: Decimal
    service_id: Optional[int] = None
    category_id: Optional[int] = None
    vendor_id: Optional[int] = None
    user_usage_count: int = 0
    user_order_count: int = 0
    now: Optional[datetime] = None


@dataclass(frozen=True)
class CouponCheck:
    ok: bool
    reason: Optional[str] = None

    @property
    def message(self) -> Optional[str]:
        return REASON_MESSAGES.get(self.reason) if self.reason else None


@dataclass(frozen=True)
class DiscountResult:
    applicable: bool
    amount: Decimal = ZERO
    reason: Optional[str] = None

    @classmethod
    def rejected(cls, reason: str) -> "DiscountResult":
        return cls(applicable=False, amount=ZERO, reason=reason)

    @property
    def message(self) -> Optional[str]:
        return REASON_MESSAGES.get(self.reason) if self.reason else None


def _fail(reason: str) -> CouponCheck:
    return CouponCheck(ok=False, reason=reason)


def validate(coupon: Coupon, ctx: CouponContext) -> CouponCheck:
    """Checks run in a fixed order; the first failure wins."""
    now = ctx.now or utcnow()

    if coupon.status != CouponStatus.ACTIVE:
        return _fail(RejectReason.INACTIVE)
    if now < coupon.start_date:
        return _fail(RejectReason.NOT_STARTED)
    if now > coupon.end_date:
        return _fail(RejectReason.EXPIRED)
    if not coupon.unlimited and coupon.usage_count >= coupon.usage_limit:
        return _fail(RejectReason.USAGE_LIMIT_REACHED)
    if coupon.user_usage_limit > 0 and ctx.user_usage_count >= coupon.user_usage_limit:
        return _fail(RejectReason.USER_LIMIT_REACHED)
    if ctx.order_amount < coupon.min_order_amount:
        return _fail(RejectReason.MIN_ORDER_NOT_MET)
    if coupon.is_first_order_only and ctx.user_order_count > 0:
        return _fail(RejectReason.FIRST_ORDER_ONLY)

    scope = coupon.applicable_for
    if scope == CouponScope.SPECIFIC_USERS and ctx.user_id not in coupon.applicable_users:
        return _fail(RejectReason.NOT_APPLICABLE_USER)
    if scope == CouponScope.SPECIFIC_SERVICES and ctx.service_id not in coupon.applicable_services:
        return _fail(RejectReason.NOT_APPLICABLE_SERVICE)
    if scope == CouponScope.SPECIFIC_CATEGORIES and ctx.category_id not in coupon.applicable_categories:
        return _fail(RejectReason.NOT_APPLICABLE_CATEGORY)
    if coupon.applicable_vendors and ctx.vendor_id not in coupon.applicable_vendors:
        return _fail(RejectReason.NOT_APPLICABLE_VENDOR)

    return CouponCheck(ok=True)


def calculate_discount(coupon: Coupon, subtotal: Decimal, delivery_fee: Decimal = ZERO) -> DiscountResult:
    if coupon.type == CouponType.PERCENTAGE:
        raw = subtotal * coupon.value / Decimal(100)
    elif coupon.type == CouponType.FIXED:
        raw = coupon.value
    else:
        raw = delivery_fee

    if coupon.max_discount_amount is not None and coupon.max_discount_amount > 0:
        raw = min(raw, coupon.max_discount_amount)
    amount = to_money(min(raw, subtotal))

    if amount <= 0:
        return DiscountResult.rejected(RejectReason.NO_DISCOUNT)
    return DiscountResult(applicable=True, amount=amount)


def evaluate(coupon: Coupon, ctx: CouponContext, delivery_fee: Decimal = ZERO) -> DiscountResult:
    check = validate(coupon, ctx)
    if not check.ok:
        return DiscountResult.rejected(check.reason)
    return calculate_discount(coupon, ctx.order_amount, delivery_fee)
