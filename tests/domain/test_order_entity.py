from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import ConflictError, InvalidStateError, ValidationError
from domain.order.entity import (
    CancelledBy,
    Order,
    OrderPricing,
    OrderStatus,
    ScheduleSlot,
)


NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _order(status=OrderStatus.PENDING) -> Order:
    pricing = OrderPricing.compute(Decimal("1000"), Decimal("10"), platform_fee_percent=Decimal("5"))
    return Order(
        id=1,
        order_number="ORD-20260301-ABCDEF12",
        user_id=7,
        vendor_id=3,
        service_id=11,
        service_name="Deep Clean",
        pricing=pricing,
        schedule=ScheduleSlot(date=date(2026, 3, 5), time="10:30"),
        customer_name="Alice",
        customer_email="alice@example.com",
        customer_phone="+8801700000000",
        status=status,
    )


def test_pricing_snapshot_with_discount_and_platform_fee():
    p = OrderPricing.compute(Decimal("1000"), Decimal("10"), platform_fee_percent=Decimal("5"))
    assert p.discount_amount == Decimal("100.00")
    assert p.subtotal == Decimal("900.00")
    assert p.platform_fee == Decimal("45.00")
    assert p.tax == Decimal("0.00")
    assert p.total_amount == Decimal("945.00")


def test_pricing_rounds_half_up_to_cents():
    p = OrderPricing.compute(
        Decimal("99.99"), Decimal("0"), platform_fee_percent=Decimal("2.5"), tax_percent=Decimal("7.5")
    )
    # 99.99 * 2.5% = 2.49975 ; 99.99 * 7.5% = 7.49925
    assert p.platform_fee == Decimal("2.50")
    assert p.tax == Decimal("7.50")
    assert p.total_amount == Decimal("109.99")


def test_pricing_rejects_non_positive_price():
    with pytest.raises(ValidationError):
        OrderPricing.compute(Decimal("0"), Decimal("0"), platform_fee_percent=Decimal("5"))


def test_coupon_discount_is_capped_at_subtotal():
    p = OrderPricing.compute(Decimal("100"), Decimal("0"), platform_fee_percent=Decimal("5"))
    applied = p.with_coupon_discount(Decimal("250"))
    assert applied.coupon_discount == Decimal("100.00")
    assert applied.total_amount == Decimal("5.00")


def test_vendor_lifecycle_happy_path():
    order = _order()
    order.accept("bring ladder", now=NOW)
    assert order.status == OrderStatus.ACCEPTED
    assert order.vendor_notes == "bring ladder"
    order.start(now=NOW)
    assert order.status == OrderStatus.IN_PROGRESS
    order.complete(now=NOW)
    assert order.status == OrderStatus.COMPLETED
    assert order.completed_at == NOW
    assert [type(e).__name__ for e in order.pull_events()] == ["OrderAccepted", "OrderStarted", "OrderCompleted"]
    assert order.pull_events() == []


@pytest.mark.parametrize(
    "status,action",
    [
        (OrderStatus.ACCEPTED, "accept"),
        (OrderStatus.PENDING, "start"),
        (OrderStatus.ACCEPTED, "complete"),
        (OrderStatus.COMPLETED, "start"),
        (OrderStatus.CANCELLED, "accept"),
    ],
)
def test_illegal_vendor_transition_leaves_order_untouched(status, action):
    order = _order(status)
    with pytest.raises(InvalidStateError):
        getattr(order, action)()
    assert order.status == status
    assert order.pull_events() == []


def test_reject_requires_reason():
    order = _order()
    with pytest.raises(ValidationError):
        order.reject("  ")
    order.reject("fully booked")
    assert order.status == OrderStatus.REJECTED
    assert order.rejection_reason == "fully booked"


def test_user_cancel_defaults_reason():
    order = _order(OrderStatus.ACCEPTED)
    order.cancel(CancelledBy.USER, now=NOW)
    assert order.status == OrderStatus.CANCELLED
    assert order.cancelled_by == CancelledBy.USER
    assert order.cancellation_reason == "Cancelled by user"


def test_vendor_cancel_needs_reason_and_cannot_cancel_in_progress():
    order = _order()
    with pytest.raises(ValidationError):
        order.cancel(CancelledBy.VENDOR)

    running = _order(OrderStatus.IN_PROGRESS)
    with pytest.raises(InvalidStateError):
        running.cancel(CancelledBy.VENDOR, "sick")
    assert running.status == OrderStatus.IN_PROGRESS


def test_admin_can_cancel_in_progress():
    order = _order(OrderStatus.IN_PROGRESS)
    order.cancel(CancelledBy.ADMIN, "dispute")
    assert order.status == OrderStatus.CANCELLED
    assert order.cancelled_by == CancelledBy.ADMIN


def test_terminal_orders_cannot_be_cancelled():
    for status in (OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELLED):
        with pytest.raises(InvalidStateError):
            _order(status).cancel(CancelledBy.ADMIN, "cleanup")


def test_reschedule_keeps_previous_slot_only():
    order = _order()
    first = ScheduleSlot(date=date(2026, 3, 10), time="09:00")
    second = ScheduleSlot(date=date(2026, 3, 12), time="14:00")
    order.reschedule(CancelledBy.USER, first, "travel", now=NOW)
    order.reschedule(CancelledBy.VENDOR, second, now=NOW)
    assert order.schedule == second
    assert order.rescheduled_from == first
    assert order.rescheduled_by == CancelledBy.VENDOR
    assert order.notes == "Rescheduled: travel"


def test_reschedule_into_the_past_is_rejected():
    order = _order()
    with pytest.raises(ValidationError):
        order.reschedule(CancelledBy.USER, ScheduleSlot(date=NOW.date() - timedelta(days=1), time="10:00"), now=NOW)


def test_invalid_time_is_a_validation_error():
    with pytest.raises(ValidationError):
        ScheduleSlot(date=date(2026, 3, 10), time="25:99").starts_at()


def test_second_coupon_conflicts():
    order = _order()
    order.apply_coupon(9, "SAVE200", Decimal("200"))
    assert order.total_amount == Decimal("745.00")
    with pytest.raises(ConflictError):
        order.apply_coupon(10, "OTHER", Decimal("10"))


def test_coupon_only_on_pending_orders():
    order = _order(OrderStatus.ACCEPTED)
    with pytest.raises(InvalidStateError):
        order.apply_coupon(9, "SAVE200", Decimal("200"))


def test_payable_statuses():
    assert not _order(OrderStatus.PENDING).payable
    assert _order(OrderStatus.ACCEPTED).payable
    assert _order(OrderStatus.COMPLETED).payable
    assert not _order(OrderStatus.CANCELLED).payable
