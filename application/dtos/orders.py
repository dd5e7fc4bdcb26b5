"""
订单相关 DTO
"""
from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import EmailStr, Field

from application.dtos.common import DTOBase
from domain.order.entity import Order

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class AddressDTO(DTOBase):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "Bangladesh"


class OrderCreateDTO(DTOBase):
    """下单请求"""
    service_id: int
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM (UTC)")
    address: AddressDTO = Field(default_factory=AddressDTO)
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    special_requirements: Optional[str] = None


class ReasonDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=1000)


class VendorNotesDTO(DTOBase):
    notes: Optional[str] = Field(None, max_length=2000)


class RescheduleDTO(DTOBase):
    new_date: date
    new_time: str = Field(..., pattern=TIME_PATTERN)
    reason: Optional[str] = Field(None, max_length=1000)


class ApplyCouponDTO(DTOBase):
    code: str = Field(..., min_length=1, max_length=50)


class OrderResponseDTO(DTOBase):
    id: int
    order_number: str
    user_id: int
    vendor_id: int
    service_id: int
    service_name: str
    category_id: Optional[int] = None
    duration: int
    customer_name: str
    customer_email: str
    customer_phone: str
    address: AddressDTO
    scheduled_date: date
    scheduled_time: str
    rescheduled_from: Optional[dict] = None
    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[str] = None
    service_price: Decimal
    discount: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    tax: Decimal
    platform_fee: Decimal
    coupon: Optional[dict] = None
    total_amount: Decimal
    status: str
    payment_status: str
    notes: Optional[str] = None
    special_requirements: Optional[str] = None
    vendor_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponseDTO":
        pricing = order.pricing
        previous = order.rescheduled_from
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            vendor_id=order.vendor_id,
            service_id=order.service_id,
            service_name=order.service_name,
            category_id=order.category_id,
            duration=order.duration,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            address=AddressDTO(**asdict(order.address)),
            scheduled_date=order.schedule.date,
            scheduled_time=order.schedule.time,
            rescheduled_from=(
                {"date": previous.date.isoformat(), "time": previous.time} if previous else None
            ),
            rescheduled_at=order.rescheduled_at,
            rescheduled_by=order.rescheduled_by.value if order.rescheduled_by else None,
            service_price=pricing.service_price,
            discount=pricing.discount,
            discount_amount=pricing.discount_amount,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            platform_fee=pricing.platform_fee,
            coupon=(
                {
                    "code": order.coupon.code,
                    "coupon_id": order.coupon.coupon_id,
                    "discount_amount": str(order.coupon.discount_amount),
                }
                if order.coupon
                else None
            ),
            total_amount=pricing.total_amount,
            status=order.status.value,
            payment_status=order.payment_status.value,
            notes=order.notes,
            special_requirements=order.special_requirements,
            vendor_notes=order.vendor_notes,
            rejection_reason=order.rejection_reason,
            cancelled_by=order.cancelled_by.value if order.cancelled_by else None,
            cancellation_reason=order.cancellation_reason,
            accepted_at=order.accepted_at,
            rejected_at=order.rejected_at,
            started_at=order.started_at,
            completed_at=order.completed_at,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderStatisticsDTO(DTOBase):
    total_orders: int
    total_revenue: Decimal
    by_status: dict[str, dict]
