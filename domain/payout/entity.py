"""
结算（Payout）领域实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.clock import ensure_utc, utcnow
from domain.common.exceptions import InvalidStateError, ValidationError
from domain.common.money import ZERO


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PayoutMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    MOBILE_BANKING = "mobile_banking"
    PAYPAL = "paypal"
    STRIPE = "stripe"


class PayoutAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass
class Payout:
    """
    结算单 - 供应商一段时间内已完成交易的汇总

    业务规则：
    1. amount = 关联交易 vendor_amount 之和，关联集合创建后不可变
    2. pending -> processing -> completed；pending -> cancelled（驳回后释放交易）
    """

    id: Optional[int]
    payout_number: str
    vendor_id: int
    amount: Decimal
    currency: str
    payment_method: PayoutMethod
    period_start: datetime
    period_end: datetime
    status: PayoutStatus = PayoutStatus.PENDING
    transaction_ids: list[int] = field(default_factory=list)
    bank_details: Optional[dict] = None
    mobile_banking_details: Optional[dict] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    gateway_response: Optional[dict] = None
    processed_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount < 0:
            raise ValidationError("Payout amount cannot be negative", field="amount")
        if self.period_end < self.period_start:
            raise ValidationError("Payout period end must not precede its start", field="period_end")
        for name in ("period_start", "period_end", "processed_at", "completed_at", "created_at", "updated_at"):
            setattr(self, name, ensure_utc(getattr(self, name)))

    @property
    def transaction_count(self) -> int:
        return len(self.transaction_ids)

    def link(self, transaction_ids: list[int], amount: Decimal) -> None:
        """只允许在创建时设置一次关联集合"""
        if self.transaction_ids:
            raise InvalidStateError("Payout transactions are already linked", action="link")
        if amount <= ZERO or not transaction_ids:
            raise ValidationError("Payout must cover at least one transaction with a positive amount")
        self.transaction_ids = list(transaction_ids)
        self.amount = amount

    def _require(self, expected: PayoutStatus, action: str) -> None:
        if self.status != expected:
            raise InvalidStateError(
                f"Cannot {action} payout with status {self.status.value}",
                current=self.status.value,
                action=action,
            )

    def approve(self, admin_id: int, notes: Optional[str] = None, gateway_transaction_id: Optional[str] = None) -> None:
        self._require(PayoutStatus.PENDING, "approve")
        now = utcnow()
        self.status = PayoutStatus.PROCESSING
        self.processed_at = now
        self.processed_by = admin_id
        self.notes = notes or self.notes
        self.gateway_transaction_id = gateway_transaction_id or self.gateway_transaction_id
        self.updated_at = now

    def reject(self, admin_id: int, notes: Optional[str] = None) -> None:
        self._require(PayoutStatus.PENDING, "reject")
        now = utcnow()
        self.status = PayoutStatus.CANCELLED
        self.processed_at = now
        self.processed_by = admin_id
        self.notes = notes or self.notes
        self.failure_reason = notes
        self.updated_at = now

    def complete(self, gateway_transaction_id: str, gateway_response: Optional[dict] = None) -> None:
        if not gateway_transaction_id:
            raise ValidationError("Gateway transaction ID is required", field="gateway_transaction_id")
        self._require(PayoutStatus.PROCESSING, "complete")
        now = utcnow()
        self.status = PayoutStatus.COMPLETED
        self.gateway_transaction_id = gateway_transaction_id
        self.gateway_response = gateway_response
        self.completed_at = now
        self.updated_at = now
