"""
Payout domain events.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PayoutEvent:
    payout_id: int
    payout_number: str
    vendor_id: int
    amount: str
    currency: str
    vendor_email: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PayoutRequested(PayoutEvent):
    transaction_count: int = 0


@dataclass
class PayoutApproved(PayoutEvent):
    pass


@dataclass
class PayoutRejected(PayoutEvent):
    notes: Optional[str] = None


@dataclass
class PayoutCompleted(PayoutEvent):
    gateway_transaction_id: Optional[str] = None
