"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- The module-level helpers are synchronous; calls run in a worker thread so
  the event loop is never blocked. Idempotency keys are supplied via the
  `idempotency_key` kwarg.
- Webhook verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Optional

import stripe

from application.dtos.payments import GatewayIntent, GatewayRefund, WebhookEvent
from core.settings import PaymentSettings, payment_settings
from domain.common.money import to_minor_units
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self, settings: PaymentSettings = payment_settings):
        super().__init__(
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        if not settings.stripe.secret_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        stripe.api_key = settings.stripe.secret_key
        stripe.max_network_retries = settings.retry.max
        self._webhook_secret = settings.stripe.webhook_secret
        self._tolerance = settings.webhook.tolerance_seconds

    def _translate(self, exc: Exception) -> PaymentProviderError:
        code = getattr(exc, "code", None)
        message = getattr(exc, "user_message", None) or str(exc)
        if isinstance(exc, (stripe.RateLimitError, stripe.APIConnectionError)):
            return PaymentRecoverableError(message, provider=self.provider, provider_code=code)
        return PaymentProviderError(message, provider=self.provider, provider_code=code)

    async def create_intent(
        self,
        *,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_key: str,
    ) -> GatewayIntent:
        self._log("stripe_intent_create", amount=str(amount), currency=currency, idempotency_key=idempotency_key)
        try:
            pi = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=to_minor_units(amount, currency),
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return GatewayIntent(
            intent_id=str(pi["id"]),
            status=str(pi["status"]),
            client_secret=pi.get("client_secret"),
        )

    async def refund(
        self,
        *,
        intent_id: str,
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GatewayRefund:
        self._log("stripe_refund_create", intent_id=intent_id, amount=str(amount))
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=intent_id,
                amount=to_minor_units(amount, currency),
                reason="requested_by_customer",
                metadata={"reason": reason or ""},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return GatewayRefund(
            refund_id=str(refund["id"]),
            status=str(refund.get("status", "")),
            provider=self.provider,
            amount=amount,
            raw={"charge": refund.get("charge")},
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = headers.get("Stripe-Signature") or headers.get("stripe-signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc
        if hasattr(event, "to_dict"):
            event = event.to_dict()
        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("type")),
            provider=self.provider,
            data=event.get("data", {}) or {},
            raw_headers=dict(headers),
            raw_body=body,
        )
