"""
结算相关 DTO
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import Field, model_validator

from application.dtos.common import DTOBase
from domain.payout.entity import Payout


class PayoutRequestDTO(DTOBase):
    payment_method: Literal["bank_transfer", "mobile_banking", "paypal", "stripe"]
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    bank_details: Optional[dict[str, Any]] = None
    mobile_banking_details: Optional[dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _check_period(self):
        if self.period_start and self.period_end and self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start")
        return self


class PayoutProcessDTO(DTOBase):
    action: Literal["approve", "reject"]
    notes: Optional[str] = Field(None, max_length=1000)
    gateway_transaction_id: Optional[str] = Field(None, max_length=200)


class PayoutCompleteDTO(DTOBase):
    gateway_transaction_id: str = Field(..., min_length=1, max_length=200)
    gateway_response: Optional[dict[str, Any]] = None


class PayoutResponseDTO(DTOBase):
    id: int
    payout_number: str
    vendor_id: int
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    transaction_ids: list[int]
    transaction_count: int
    period_start: datetime
    period_end: datetime
    bank_details: Optional[dict[str, Any]] = None
    mobile_banking_details: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    processed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, payout: Payout) -> "PayoutResponseDTO":
        return cls(
            id=payout.id,
            payout_number=payout.payout_number,
            vendor_id=payout.vendor_id,
            amount=payout.amount,
            currency=payout.currency,
            status=payout.status.value,
            payment_method=payout.payment_method.value,
            transaction_ids=payout.transaction_ids,
            transaction_count=payout.transaction_count,
            period_start=payout.period_start,
            period_end=payout.period_end,
            bank_details=payout.bank_details,
            mobile_banking_details=payout.mobile_banking_details,
            notes=payout.notes,
            failure_reason=payout.failure_reason,
            gateway_transaction_id=payout.gateway_transaction_id,
            processed_at=payout.processed_at,
            processed_by=payout.processed_by,
            completed_at=payout.completed_at,
            created_at=payout.created_at,
        )


class BalanceDTO(DTOBase):
    vendor_id: int
    available_balance: Decimal
    currency: str
