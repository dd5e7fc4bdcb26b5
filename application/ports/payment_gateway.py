"""
Payment gateway ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    GatewayIntent,
    GatewayRefund,
    GatewayValidation,
    RedirectSession,
    RedirectSessionRequest,
    WebhookEvent,
)


@runtime_checkable
class CardPaymentGateway(Protocol):
    """Card gateway with client-side confirmation and signed webhooks (Stripe)."""

    provider: str

    async def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_key: str,
    ) -> GatewayIntent: ...

    async def refund(
        self,
        *,
        intent_id: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayRefund: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...


@runtime_checkable
class RedirectPaymentGateway(Protocol):
    """Hosted-page gateway confirmed by server-side validation (SSLCommerz)."""

    provider: str

    async def init_session(self, req: RedirectSessionRequest) -> RedirectSession: ...

    async def validate(self, val_id: str) -> GatewayValidation: ...

    async def query_by_transaction(self, tran_id: str) -> GatewayValidation: ...

    async def refund(
        self,
        *,
        bank_tran_id: str,
        amount: Decimal,
        remarks: str,
        reference: str,
    ) -> GatewayRefund: ...

    async def refund_query(self, refund_ref_id: str) -> dict[str, Any]: ...
