"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utcnow
from domain.common.exceptions import ConflictError, InvalidStateError, ValidationError
from domain.common.money import ZERO, percent_of, to_money
from domain.order import events


class OrderStatus(str, Enum):
    """订单状态"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    """订单支付状态（独立于履约状态）"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancelledBy(str, Enum):
    USER = "user"
    VENDOR = "vendor"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REJECTED})

# action -> (allowed source statuses, target status)
VENDOR_TRANSITIONS: dict[str, tuple[frozenset, OrderStatus]] = {
    "accept": (frozenset({OrderStatus.PENDING}), OrderStatus.ACCEPTED),
    "reject": (frozenset({OrderStatus.PENDING}), OrderStatus.REJECTED),
    "start": (frozenset({OrderStatus.ACCEPTED}), OrderStatus.IN_PROGRESS),
    "complete": (frozenset({OrderStatus.IN_PROGRESS}), OrderStatus.COMPLETED),
}

CANCELLABLE_FROM: dict[CancelledBy, frozenset] = {
    CancelledBy.USER: frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED}),
    CancelledBy.VENDOR: frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED}),
    CancelledBy.ADMIN: frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS}),
}

RESCHEDULABLE_FROM = frozenset({OrderStatus.PENDING, OrderStatus.ACCEPTED})

DEFAULT_USER_CANCEL_REASON = "Cancelled by user"


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "Bangladesh"


@dataclass(frozen=True)
class ScheduleSlot:
    date: date
    time: str

    def starts_at(self) -> datetime:
        """将日期与 HH:MM 时间合成为 UTC 时间点"""
        try:
            hh, mm = (int(p) for p in self.time.split(":")[:2])
            clock = time(hh, mm)
        except (ValueError, AttributeError):
            raise ValidationError(f"Invalid scheduled time: {self.time!r}", field="scheduled_time")
        return ensure_utc(datetime.combine(self.date, clock))


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    coupon_id: int
    discount_amount: Decimal


@dataclass(frozen=True)
class OrderPricing:
    """
    价格快照 - 创建时计算，之后只允许优惠券调整一次

    total_amount = subtotal + tax + platform_fee - coupon_discount
    """

    service_price: Decimal
    discount: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    coupon_discount: Decimal = ZERO

    @classmethod
    def compute(
        cls,
        service_price: Decimal,
        discount_percent: Decimal,
        *,
        platform_fee_percent: Decimal,
        tax_percent: Decimal = ZERO,
    ) -> "OrderPricing":
        price = to_money(service_price)
        if price <= 0:
            raise ValidationError("Service price must be greater than 0", field="service_price")
        discount_amount = percent_of(price, discount_percent or ZERO)
        subtotal = price - discount_amount
        tax = percent_of(subtotal, tax_percent)
        platform_fee = percent_of(subtotal, platform_fee_percent)
        return cls(
            service_price=price,
            discount=Decimal(str(discount_percent or 0)),
            discount_amount=discount_amount,
            subtotal=subtotal,
            tax=tax,
            platform_fee=platform_fee,
            total_amount=subtotal + tax + platform_fee,
        )

    def with_coupon_discount(self, amount: Decimal) -> "OrderPricing":
        discount = min(to_money(amount), self.subtotal)
        total = self.subtotal + self.tax + self.platform_fee - discount
        return replace(self, coupon_discount=discount, total_amount=max(total, ZERO))


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 状态转换必须遵循状态机，终态（completed/cancelled/rejected）不可再变
    2. 价格快照创建后不可变，优惠券只能在 pending 状态下应用一次
    3. 支付状态只由结算流程修改
    """

    id: Optional[int]
    order_number: str
    user_id: int
    vendor_id: int
    service_id: int
    service_name: str
    pricing: OrderPricing
    schedule: ScheduleSlot
    customer_name: str
    customer_email: str
    customer_phone: str
    address: Address = field(default_factory=Address)
    category_id: Optional[int] = None
    duration: int = 60
    status: OrderStatus = OrderStatus.PENDING
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    coupon: Optional[AppliedCoupon] = None
    notes: Optional[str] = None
    special_requirements: Optional[str] = None
    vendor_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_reason: Optional[str] = None
    rescheduled_from: Optional[ScheduleSlot] = None
    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[CancelledBy] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    _events: list = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self):
        for name in (
            "accepted_at", "rejected_at", "started_at", "completed_at",
            "cancelled_at", "rescheduled_at", "created_at", "updated_at",
        ):
            setattr(self, name, ensure_utc(getattr(self, name)))

    # ---- events ----

    def _record(self, event_cls, **kwargs) -> None:
        self._events.append(
            event_cls(
                order_id=self.id,
                order_number=self.order_number,
                user_id=self.user_id,
                vendor_id=self.vendor_id,
                customer_email=self.customer_email,
                customer_name=self.customer_name,
                **kwargs,
            )
        )

    def placed(self, vendor_email: Optional[str] = None) -> None:
        """持久化后记录下单事件（需要已分配的 id）"""
        self._record(
            events.OrderPlaced,
            service_name=self.service_name,
            total_amount=str(self.total_amount),
            scheduled_date=self.schedule.date.isoformat(),
            scheduled_time=self.schedule.time,
            vendor_email=vendor_email,
        )

    def pull_events(self) -> list:
        pending, self._events = self._events, []
        return pending

    # ---- guards ----

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, action: str, now: datetime) -> None:
        allowed, target = VENDOR_TRANSITIONS[action]
        if self.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} order with status {self.status.value}",
                current=self.status.value,
                action=action,
            )
        self.status = target
        self.updated_at = now

    # ---- vendor actions ----

    def accept(self, notes: Optional[str] = None, *, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self._transition("accept", now)
        self.accepted_at = now
        if notes:
            self.vendor_notes = notes
        self._record(events.OrderAccepted, notes=notes)

    def reject(self, reason: str, *, now: Optional[datetime] = None) -> None:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", field="reason")
        now = now or utcnow()
        self._transition("reject", now)
        self.rejected_at = now
        self.rejection_reason = reason.strip()
        self._record(events.OrderRejected, reason=self.rejection_reason)

    def start(self, *, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self._transition("start", now)
        self.started_at = now
        self._record(events.OrderStarted)

    def complete(self, notes: Optional[str] = None, *, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self._transition("complete", now)
        self.completed_at = now
        if notes:
            self.vendor_notes = notes
        self._record(events.OrderCompleted)

    # ---- shared actions ----

    def cancel(self, by: CancelledBy, reason: Optional[str] = None, *, now: Optional[datetime] = None) -> None:
        reason = (reason or "").strip()
        if by in (CancelledBy.VENDOR, CancelledBy.ADMIN) and not reason:
            raise ValidationError("Cancellation reason is required", field="reason")
        if self.status not in CANCELLABLE_FROM[by]:
            raise InvalidStateError(
                f"Order with status {self.status.value} cannot be cancelled by {by.value}",
                current=self.status.value,
                action="cancel",
            )
        now = now or utcnow()
        self.status = OrderStatus.CANCELLED
        self.cancelled_at = now
        self.cancelled_by = by
        self.cancellation_reason = reason or DEFAULT_USER_CANCEL_REASON
        self.updated_at = now
        self._record(events.OrderCancelled, cancelled_by=by.value, reason=self.cancellation_reason)

    def reschedule(
        self,
        by: CancelledBy,
        new_slot: ScheduleSlot,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        """改期：只保留上一次的排期（单槽历史）"""
        if by == CancelledBy.ADMIN:
            raise ValidationError("Only the customer or vendor can reschedule", field="actor")
        if self.status not in RESCHEDULABLE_FROM:
            raise InvalidStateError(
                f"Order with status {self.status.value} cannot be rescheduled",
                current=self.status.value,
                action="reschedule",
            )
        now = now or utcnow()
        ensure_future(new_slot, now)
        previous = self.schedule
        self.rescheduled_from = previous
        self.schedule = new_slot
        self.rescheduled_at = now
        self.rescheduled_by = by
        if reason:
            line = f"Rescheduled: {reason.strip()}"
            self.notes = f"{self.notes}\n{line}" if self.notes else line
        self.updated_at = now
        self._record(
            events.OrderRescheduled,
            previous_date=previous.date.isoformat(),
            previous_time=previous.time,
            new_date=new_slot.date.isoformat(),
            new_time=new_slot.time,
            rescheduled_by=by.value,
        )

    def ensure_coupon_allowed(self) -> None:
        if self.status != OrderStatus.PENDING:
            raise InvalidStateError(
                "Coupons can only be applied to pending orders",
                current=self.status.value,
                action="apply_coupon",
            )
        if self.coupon is not None:
            raise ConflictError("A coupon is already applied to this order")

    def apply_coupon(self, coupon_id: int, code: str, amount: Decimal, *, now: Optional[datetime] = None) -> None:
        self.ensure_coupon_allowed()
        self.pricing = self.pricing.with_coupon_discount(amount)
        self.coupon = AppliedCoupon(code=code, coupon_id=coupon_id, discount_amount=self.pricing.coupon_discount)
        self.updated_at = now or utcnow()
        self._record(
            events.CouponApplied,
            code=code,
            discount_amount=str(self.pricing.coupon_discount),
            total_amount=str(self.pricing.total_amount),
        )

    # ---- payment synchronisation ----

    @property
    def payable(self) -> bool:
        return self.status in (OrderStatus.ACCEPTED, OrderStatus.COMPLETED)

    @property
    def total_amount(self) -> Decimal:
        return self.pricing.total_amount


def ensure_future(slot: ScheduleSlot, now: Optional[datetime] = None) -> None:
    if slot.starts_at() <= (now or utcnow()):
        raise ValidationError("Scheduled date must be in the future", field="scheduled_date")
