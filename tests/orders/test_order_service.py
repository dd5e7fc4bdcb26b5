from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from application.dtos.orders import RescheduleDTO
from application.services.order_service import OrderService
from domain.common.actor import Actor, Role
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from domain.coupon.entity import Coupon, CouponStatus, CouponType
from domain.order.entity import CancelledBy, OrderStatus
from infrastructure.models import ServiceModel, VendorModel
from infrastructure.repositories.coupon_repository import SQLAlchemyCouponRepository


@pytest.mark.asyncio
async def test_create_order_snapshots_pricing(order_service, catalog, customer, notifier, uow_factory, order_request):
    order = await order_service.create(customer, order_request(catalog["service_id"]))

    assert order.order_number.startswith("ORD-")
    assert order.status == "pending"
    assert order.payment_status == "pending"
    assert order.subtotal == Decimal("900.00")
    assert order.platform_fee == Decimal("45.00")
    assert order.total_amount == Decimal("945.00")
    assert order.customer_email == "alice@example.com"
    assert notifier.names() == ["OrderPlaced"]

    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(catalog["vendor_id"])
    assert vendor.total_orders == 1


@pytest.mark.asyncio
async def test_create_order_in_the_past_is_rejected(order_service, catalog, customer, order_request):
    with pytest.raises(ValidationError):
        await order_service.create(customer, order_request(catalog["service_id"], days_ahead=-1))


@pytest.mark.asyncio
async def test_create_order_requires_contact_details(order_service, catalog, order_request):
    anonymous = Actor(id=8, role=Role.USER)
    with pytest.raises(ValidationError) as ei:
        await order_service.create(anonymous, order_request(catalog["service_id"]))
    assert ei.value.details["missing"] == ["customer_name", "customer_email", "customer_phone"]


@pytest.mark.asyncio
async def test_unavailable_service_and_unapproved_vendor(
    order_service, catalog, customer, session_factory, order_request
):
    async with session_factory() as session:
        vendor = VendorModel(user_id=60, company_name="Pending Co", approval_status="pending")
        session.add(vendor)
        await session.flush()
        hidden = ServiceModel(vendor_id=catalog["vendor_id"], name="Hidden", price=Decimal("50"), is_available=False)
        other = ServiceModel(vendor_id=vendor.id, name="Window Wash", price=Decimal("80"))
        session.add_all([hidden, other])
        await session.commit()
        hidden_id, other_id = hidden.id, other.id

    with pytest.raises(UnavailableError):
        await order_service.create(customer, order_request(hidden_id))
    with pytest.raises(UnavailableError):
        await order_service.create(customer, order_request(other_id))
    with pytest.raises(NotFoundError):
        await order_service.create(customer, order_request(9999))


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_the_order(
    uow_factory, marketplace_config, failing_notifier, catalog, customer, order_request
):
    service = OrderService(uow_factory, marketplace_config, failing_notifier)
    order = await service.create(customer, order_request(catalog["service_id"]))
    stored = await service.get(customer, order.id)
    assert stored.status == "pending"


@pytest.mark.asyncio
async def test_vendor_flow_and_vendor_cannot_cancel_in_progress(order_service, placed_order, vendor_actor, notifier):
    await order_service.accept(vendor_actor, placed_order.id, "on my way")
    started = await order_service.start(vendor_actor, placed_order.id)
    assert started.status == "in_progress"

    with pytest.raises(InvalidStateError):
        await order_service.cancel(vendor_actor, placed_order.id, CancelledBy.VENDOR, "sick")

    completed = await order_service.complete(vendor_actor, placed_order.id)
    assert completed.status == "completed"
    assert completed.vendor_notes == "on my way"
    assert notifier.names() == ["OrderPlaced", "OrderAccepted", "OrderStarted", "OrderCompleted"]


@pytest.mark.asyncio
async def test_other_vendor_cannot_touch_order(order_service, placed_order, session_factory):
    async with session_factory() as session:
        session.add(VendorModel(user_id=61, company_name="Rival", approval_status="approved"))
        await session.commit()
    rival = Actor(id=61, role=Role.VENDOR)
    with pytest.raises(ForbiddenError):
        await order_service.accept(rival, placed_order.id)


@pytest.mark.asyncio
async def test_customer_cancel_and_ownership(order_service, placed_order, customer):
    stranger = Actor(id=99, role=Role.USER)
    with pytest.raises(ForbiddenError):
        await order_service.cancel(stranger, placed_order.id, CancelledBy.USER)

    cancelled = await order_service.cancel(customer, placed_order.id, CancelledBy.USER)
    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "Cancelled by user"

    with pytest.raises(InvalidStateError):
        await order_service.cancel(customer, placed_order.id, CancelledBy.USER)


@pytest.mark.asyncio
async def test_admin_cancel_in_progress(order_service, accepted_order, vendor_actor, admin):
    await order_service.start(vendor_actor, accepted_order.id)
    cancelled = await order_service.cancel(admin, accepted_order.id, CancelledBy.ADMIN, "customer dispute")
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "admin"


@pytest.mark.asyncio
async def test_reschedule_records_previous_slot(order_service, placed_order, customer):
    new_date = date.today() + timedelta(days=10)
    updated = await order_service.reschedule(
        customer, placed_order.id, RescheduleDTO(new_date=new_date, new_time="15:00", reason="travel")
    )
    assert updated.scheduled_date == new_date
    assert updated.scheduled_time == "15:00"
    assert updated.rescheduled_from == {"date": placed_order.scheduled_date.isoformat(), "time": "10:30"}
    assert updated.rescheduled_by == "user"


@pytest.mark.asyncio
async def test_apply_fixed_coupon(order_service, placed_order, customer, fixed_coupon, uow_factory, notifier):
    updated = await order_service.apply_coupon(customer, placed_order.id, "save200")
    assert updated.total_amount == Decimal("745.00")
    assert updated.coupon["code"] == "SAVE200"
    assert updated.coupon["discount_amount"] == "200.00"
    assert notifier.names()[-1] == "CouponApplied"

    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_id(fixed_coupon.id)
    assert coupon.usage_count == 1

    with pytest.raises(ConflictError):
        await order_service.apply_coupon(customer, placed_order.id, "SAVE200")


@pytest.mark.asyncio
async def test_rejected_coupon_reports_reason(order_service, placed_order, customer, uow_factory, fixed_coupon):
    now = datetime.now(timezone.utc)
    async with uow_factory() as uow:
        await uow.coupon_repository.create(
            Coupon(
                id=None,
                code="BIGSPEND",
                name="Big spenders",
                type=CouponType.PERCENTAGE,
                value=Decimal("10"),
                min_order_amount=Decimal("5000"),
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=1),
            )
        )
    with pytest.raises(ValidationError) as ei:
        await order_service.apply_coupon(customer, placed_order.id, "bigspend")
    assert ei.value.details == {"reason": "min_order_not_met"}

    with pytest.raises(NotFoundError):
        await order_service.apply_coupon(customer, placed_order.id, "NOPE")


@pytest.fixture
async def single_use_coupon(uow_factory):
    now = datetime.now(timezone.utc)
    async with uow_factory() as uow:
        return await uow.coupon_repository.create(
            Coupon(
                id=None,
                code="ONCE",
                name="One redemption",
                type=CouponType.FIXED,
                value=Decimal("100"),
                usage_limit=1,
                start_date=now - timedelta(days=1),
                end_date=now + timedelta(days=1),
            )
        )


@pytest.fixture
def second_customer():
    return Actor(id=8, role=Role.USER, email="bob@example.com", name="Bob", phone="+8801800000000")


@pytest.mark.asyncio
async def test_coupon_usage_cap_is_atomic(
    order_service, catalog, customer, second_customer, order_request, single_use_coupon, uow_factory, monkeypatch
):
    first = await order_service.create(customer, order_request(catalog["service_id"]))
    second = await order_service.create(second_customer, order_request(catalog["service_id"]))

    applied = await order_service.apply_coupon(customer, first.id, "once")
    assert applied.total_amount == Decimal("845.00")
    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_id(single_use_coupon.id)
    assert coupon.usage_count == 1
    assert coupon.status == CouponStatus.USED_UP

    # both requests read the coupon before either one counted its use
    async def stale_read(self, code):
        return replace(coupon, usage_count=0, status=CouponStatus.ACTIVE)

    monkeypatch.setattr(SQLAlchemyCouponRepository, "get_by_code", stale_read)
    with pytest.raises(ConflictError):
        await order_service.apply_coupon(second_customer, second.id, "ONCE")
    monkeypatch.undo()

    untouched = await order_service.get(second_customer, second.id)
    assert untouched.total_amount == second.total_amount
    assert untouched.coupon is None
    async with uow_factory(readonly=True) as uow:
        assert (await uow.coupon_repository.get_by_id(single_use_coupon.id)).usage_count == 1

    # without the race the used-up coupon is rejected up front
    with pytest.raises(ValidationError) as ei:
        await order_service.apply_coupon(second_customer, second.id, "ONCE")
    assert ei.value.details == {"reason": "inactive"}


@pytest.mark.asyncio
async def test_listing_and_statistics(order_service, catalog, customer, vendor_actor, order_request):
    first = await order_service.create(customer, order_request(catalog["service_id"]))
    await order_service.create(customer, order_request(catalog["service_id"], days_ahead=5))
    await order_service.accept(vendor_actor, first.id)
    await order_service.start(vendor_actor, first.id)
    await order_service.complete(vendor_actor, first.id)

    items, total = await order_service.list_for_user(customer, page=1, limit=1)
    assert total == 2
    assert len(items) == 1

    items, total = await order_service.list_for_vendor(vendor_actor, status=OrderStatus.PENDING)
    assert total == 1

    stats = await order_service.statistics()
    assert stats.total_orders == 2
    assert stats.total_revenue == Decimal("945.00")
    assert stats.by_status["completed"]["count"] == 1
