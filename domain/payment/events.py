"""
Payment domain events.

Dataclass events record important ledger facts for downstream handling
(notifications, reconciliation). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    transaction_id: int
    transaction_number: str
    order_id: int
    user_id: int
    vendor_id: int
    amount: str
    currency: str
    payment_method: str
    customer_email: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCompleted(PaymentEvent):
    pass


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    refund_amount: str = ""
    total_refunded: str = ""
    status: str = ""
    reason: Optional[str] = None

