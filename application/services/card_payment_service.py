"""
Card payments: Stripe PaymentIntents confirmed client-side, settled by webhook.

The webhook is the only success signal; the client never reports an outcome.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import CardIntentResult, CardSettlement, WebhookEvent
from application.ports.idempotency import EventDeduplicator
from application.ports.payment_gateway import CardPaymentGateway
from application.services.ledger_service import TransactionLedger
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.exceptions import GatewayError
from domain.common.money import from_minor_units
from domain.payment.entity import PaymentMethod


logger = get_logger(__name__)

INTENT_FAILURE_REASON = "Failed to create payment intent"


class CardPaymentService:
    def __init__(
        self,
        ledger: TransactionLedger,
        gateway: CardPaymentGateway,
        deduplicator: Optional[EventDeduplicator] = None,
    ) -> None:
        self._ledger = ledger
        self._gateway = gateway
        self._dedupe = deduplicator

    async def create_intent(self, actor: Actor, order_id: int) -> CardIntentResult:
        txn, order = await self._ledger.initiate(actor, order_id, PaymentMethod.STRIPE)
        try:
            intent = await self._gateway.create_intent(
                amount=txn.amount,
                currency=txn.currency,
                metadata={
                    "order_id": str(order.id),
                    "order_number": order.order_number,
                    "transaction_id": str(txn.id),
                    "transaction_number": txn.transaction_number,
                    "user_id": str(order.user_id),
                    "vendor_id": str(order.vendor_id),
                },
                idempotency_key=txn.transaction_number,
            )
        except GatewayError as exc:
            logger.error(
                "payment_intent_create_failed",
                transaction_id=txn.id,
                order_id=order.id,
                reason=exc.reason,
            )
            await self._ledger.mark_failed(txn.id, INTENT_FAILURE_REASON, {"error": exc.reason})
            raise

        await self._ledger.attach_gateway_reference(
            txn.id,
            {
                "stripe_payment_intent_id": intent.intent_id,
                "gateway_response": {"intent_status": intent.status},
            },
        )
        logger.info(
            "payment_intent_created",
            transaction_id=txn.id,
            order_id=order.id,
            intent_id=intent.intent_id,
            amount=str(txn.amount),
        )
        return CardIntentResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.intent_id,
            transaction_id=txn.id,
            amount=txn.amount,
        )

    async def handle_webhook(self, headers: dict[str, Any], body: bytes) -> dict:
        # Signature errors propagate unchanged (HTTP 400, no state change)
        event = self._gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=self._gateway.provider, event_type=event.type, event_id=event.id)

        key = f"{self._gateway.provider}:{event.id}"
        if self._dedupe is not None:
            ttl = self._ledger.config.webhook_dedupe_ttl_seconds
            if not await self._dedupe.first_seen(key, ttl):
                logger.info("payment_webhook_duplicate", event_id=event.id, event_type=event.type)
                return {"received": True, "duplicate": True}

        try:
            applied = await self._dispatch(event)
        except Exception:
            if self._dedupe is not None:
                await self._dedupe.forget(key)
            raise
        return {"received": True, "type": event.type, "applied": applied}

    async def _dispatch(self, event: WebhookEvent) -> bool:
        obj = event.data.get("object") or {}
        if event.type == "payment_intent.succeeded":
            result = await self._ledger.settle(
                CardSettlement(
                    transaction_ref=str(obj.get("id")),
                    ref_kind="stripe_intent",
                    outcome="success",
                    charge_id=obj.get("latest_charge"),
                    gateway_metadata={"event_id": event.id, "intent_status": obj.get("status")},
                )
            )
            return result.applied
        if event.type == "payment_intent.payment_failed":
            error = obj.get("last_payment_error") or {}
            result = await self._ledger.settle(
                CardSettlement(
                    transaction_ref=str(obj.get("id")),
                    ref_kind="stripe_intent",
                    outcome="failure",
                    reason=error.get("message") or "Payment failed",
                    gateway_metadata={"event_id": event.id, "error_code": error.get("code")},
                )
            )
            return result.applied
        if event.type == "charge.refunded":
            intent_id = obj.get("payment_intent")
            if not intent_id:
                logger.warning("charge_refunded_without_intent", event_id=event.id)
                return False
            refunded = from_minor_units(obj.get("amount_refunded") or 0, obj.get("currency") or "usd")
            refunds = (obj.get("refunds") or {}).get("data") or []
            refund_id = refunds[0].get("id") if refunds else None
            return await self._ledger.record_gateway_refund(intent_id, refunded, refund_id)

        logger.info("payment_webhook_ignored", event_type=event.type, event_id=event.id)
        return False
