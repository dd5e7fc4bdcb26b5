"""
Order domain events.

Collected on the aggregate during a use-case and published by the
application layer only after the unit of work commits.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: int
    order_number: str
    user_id: int
    vendor_id: int
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPlaced(OrderEvent):
    service_name: str = ""
    total_amount: str = ""
    scheduled_date: str = ""
    scheduled_time: str = ""
    vendor_email: Optional[str] = None


@dataclass
class OrderAccepted(OrderEvent):
    notes: Optional[str] = None


@dataclass
class OrderRejected(OrderEvent):
    reason: str = ""


@dataclass
class OrderStarted(OrderEvent):
    pass


@dataclass
class OrderCompleted(OrderEvent):
    pass


@dataclass
class OrderCancelled(OrderEvent):
    cancelled_by: str = ""
    reason: str = ""


@dataclass
class OrderRescheduled(OrderEvent):
    previous_date: str = ""
    previous_time: str = ""
    new_date: str = ""
    new_time: str = ""
    rescheduled_by: str = ""


@dataclass
class CouponApplied(OrderEvent):
    code: str = ""
    discount_amount: str = ""
    total_amount: str = ""
