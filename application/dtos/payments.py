"""
Payment DTOs (Pydantic v2) used at application boundaries.

``SettlementEvent`` is the single shape every gateway adapter normalises its
callbacks into before handing them to the transaction ledger.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

from application.dtos.common import DTOBase
from domain.payment.entity import Transaction


Outcome = Literal["success", "failure"]
RefKind = Literal["id", "number", "stripe_intent"]


class _SettlementBase(BaseModel):
    transaction_ref: str
    ref_kind: RefKind = "id"
    outcome: Outcome
    reason: Optional[str] = None
    gateway_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class CardSettlement(_SettlementBase):
    payment_method: Literal["stripe"] = "stripe"
    charge_id: Optional[str] = None


class RedirectSettlement(_SettlementBase):
    payment_method: Literal["sslcommerz"] = "sslcommerz"
    validation_id: Optional[str] = None
    bank_tran_id: Optional[str] = None


class ManualSettlement(_SettlementBase):
    payment_method: Literal["cash", "bank_transfer"]
    verified_by: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


SettlementEvent = Annotated[
    Union[CardSettlement, RedirectSettlement, ManualSettlement],
    Field(discriminator="payment_method"),
]


# ---- gateway port payloads ----

class GatewayIntent(BaseModel):
    intent_id: str
    status: str
    client_secret: Optional[str] = None


class GatewayRefund(BaseModel):
    refund_id: str
    status: str
    provider: str
    amount: Optional[Decimal] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class RedirectSessionRequest(BaseModel):
    tran_id: str
    amount: Decimal
    currency: str
    success_url: str
    fail_url: str
    cancel_url: str
    ipn_url: str
    product_name: str
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_address: str = ""
    customer_city: str = ""
    customer_postcode: str = ""
    customer_country: str = "Bangladesh"
    value_a: Optional[str] = None
    value_b: Optional[str] = None
    value_c: Optional[str] = None
    value_d: Optional[str] = None


class RedirectSession(BaseModel):
    gateway_url: str
    session_key: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class GatewayValidation(BaseModel):
    """Result of asking the redirect gateway what really happened."""
    status: str
    outcome: Literal["success", "failure", "pending"]
    tran_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    val_id: Optional[str] = None
    bank_tran_id: Optional[str] = None
    reason: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


# ---- request bodies ----

class CreateIntentRequest(DTOBase):
    order_id: int


class RedirectInitRequest(DTOBase):
    order_id: int


class ManualPaymentRequest(DTOBase):
    order_id: int
    payment_method: Literal["cash", "bank_transfer"]
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class ProofUploadRequest(DTOBase):
    proof_url: str = Field(..., min_length=1, max_length=1000, description="External file store id/url")
    details: Optional[dict[str, Any]] = None


class VerifyPaymentRequest(DTOBase):
    action: Literal["approve", "reject"]
    notes: Optional[str] = Field(None, max_length=1000)
    reference_number: Optional[str] = Field(None, max_length=100)


class RefundRequest(DTOBase):
    amount: Optional[condecimal(gt=0, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[str] = Field(None, max_length=1000)


class ValidateRequest(DTOBase):
    val_id: str


# ---- responses ----

class CardIntentResult(DTOBase):
    client_secret: Optional[str]
    payment_intent_id: str
    transaction_id: int
    amount: Decimal


class RedirectInitResult(DTOBase):
    gateway_url: str
    session_key: Optional[str] = None
    transaction_id: int
    transaction_number: str


class CallbackResult(DTOBase):
    """Outcome of a redirect-gateway callback; ``redirect_url`` is set for browser kinds."""
    transaction_number: Optional[str] = None
    status: Optional[str] = None
    applied: bool = False
    redirect_url: Optional[str] = None


class TransactionResponseDTO(DTOBase):
    id: int
    transaction_number: str
    type: str
    order_id: int
    user_id: int
    vendor_id: int
    amount: Decimal
    currency: str
    commission_rate: Decimal
    commission_amount: Decimal
    vendor_amount: Decimal
    payment_method: str
    status: str
    stripe_payment_intent_id: Optional[str] = None
    sslcommerz_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    refund_amount: Decimal
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    payout_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, txn: Transaction) -> "TransactionResponseDTO":
        return cls(
            id=txn.id,
            transaction_number=txn.transaction_number,
            type=txn.type.value,
            order_id=txn.order_id,
            user_id=txn.user_id,
            vendor_id=txn.vendor_id,
            amount=txn.amount,
            currency=txn.currency,
            commission_rate=txn.commission_rate,
            commission_amount=txn.commission_amount,
            vendor_amount=txn.vendor_amount,
            payment_method=txn.payment_method.value,
            status=txn.status.value,
            stripe_payment_intent_id=txn.stripe_payment_intent_id,
            sslcommerz_transaction_id=txn.sslcommerz_transaction_id,
            failure_reason=txn.failure_reason,
            refund_amount=txn.refund_amount,
            refund_reason=txn.refund_reason,
            refunded_at=txn.refunded_at,
            payout_id=txn.payout_id,
            metadata=txn.metadata,
            processed_at=txn.processed_at,
            completed_at=txn.completed_at,
            created_at=txn.created_at,
        )


class VerificationStatsDTO(DTOBase):
    pending: int
    approved: int
    rejected: int
    pending_amount: Decimal

    @field_validator("pending_amount", mode="before")
    @classmethod
    def _as_decimal(cls, v):
        return Decimal(str(v))
