"""
交易流水领域实体 - 每一次资金变动尝试（支付/退款）都对应一条 Transaction
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from enum import Enum

from domain.common.clock import ensure_utc
from domain.common.exceptions import InvalidStateError, ValidationError
from domain.common.money import ZERO, percent_of, to_money


class TransactionStatus(str, Enum):
    """交易状态枚举"""
    PENDING = "pending"             # 已创建，等待网关
    PROCESSING = "processing"       # 手工支付待审核
    COMPLETED = "completed"         # 支付成功
    FAILED = "failed"               # 支付失败
    REFUNDED = "refunded"           # 全额退款
    PARTIALLY_REFUNDED = "partially_refunded"


class TransactionType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    PAYOUT = "payout"
    COMMISSION = "commission"


class PaymentMethod(str, Enum):
    STRIPE = "stripe"
    SSLCOMMERZ = "sslcommerz"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"

    @property
    def is_manual(self) -> bool:
        return self in (PaymentMethod.CASH, PaymentMethod.BANK_TRANSFER)


OPEN_STATUSES = frozenset({TransactionStatus.PENDING, TransactionStatus.PROCESSING})
REFUNDABLE_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.PARTIALLY_REFUNDED})


def split_commission(amount: Decimal, rate: Decimal) -> tuple[Decimal, Decimal]:
    """返回 (commission_amount, vendor_amount)，两者之和恒等于 amount"""
    gross = to_money(amount)
    commission = percent_of(gross, rate)
    return commission, gross - commission


@dataclass
class Transaction:
    """
    交易聚合根

    业务规则：
    1. commission_amount + vendor_amount == amount
    2. 状态只能前进：pending/processing -> completed/failed；
       退款只能从 completed（或部分退款）发起
    3. 失败的交易保留为审计记录，不删除
    """

    id: Optional[int]
    transaction_number: str
    order_id: int
    user_id: int
    vendor_id: int
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    commission_rate: Decimal
    commission_amount: Decimal
    vendor_amount: Decimal
    type: TransactionType = TransactionType.PAYMENT
    status: TransactionStatus = TransactionStatus.PENDING

    # 网关关联字段
    stripe_payment_intent_id: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    sslcommerz_transaction_id: Optional[str] = None
    sslcommerz_session_key: Optional[str] = None
    sslcommerz_validation_id: Optional[str] = None
    sslcommerz_bank_tran_id: Optional[str] = None
    gateway_response: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    failure_reason: Optional[str] = None

    # 退款
    refund_amount: Decimal = ZERO
    refund_reason: Optional[str] = None
    refund_id: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[int] = None

    # 结算
    payout_id: Optional[int] = None
    earnings_credited: bool = False

    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValidationError(f"Transaction amount must be greater than 0: {self.amount}", field="amount")
        if self.commission_amount + self.vendor_amount != self.amount:
            raise ValidationError("Commission split does not add up to amount", field="commission_amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise ValidationError(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        for name in ("refunded_at", "processed_at", "completed_at", "created_at", "updated_at"):
            setattr(self, name, ensure_utc(getattr(self, name)))
        if self.gateway_response is None:
            self.gateway_response = {}
        if self.metadata is None:
            self.metadata = {}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - self.refund_amount

    def plan_refund(self, amount: Optional[Decimal]) -> tuple[Decimal, Decimal, TransactionStatus]:
        """
        校验退款并返回 (本次金额, 累计退款额, 目标状态)

        amount 为空时退还全部剩余金额。
        """
        if self.status not in REFUNDABLE_STATUSES:
            raise InvalidStateError(
                f"Only completed transactions can be refunded (status: {self.status.value})",
                current=self.status.value,
                action="refund",
            )
        remaining = self.refundable_amount
        value = to_money(amount) if amount is not None else remaining
        if value <= 0:
            raise ValidationError(f"Refund amount must be greater than 0: {value}", field="amount")
        if value > remaining:
            raise ValidationError(
                f"Refund amount {value} exceeds refundable amount {remaining}",
                field="amount",
            )
        target = TransactionStatus.REFUNDED if value >= remaining else TransactionStatus.PARTIALLY_REFUNDED
        return value, self.refund_amount + value, target

    def gateway_reference(self) -> Optional[str]:
        if self.payment_method == PaymentMethod.STRIPE:
            return self.stripe_payment_intent_id
        if self.payment_method == PaymentMethod.SSLCOMMERZ:
            return self.sslcommerz_transaction_id
        return self.metadata.get("reference_number")
