import json
from decimal import Decimal

import pytest

from application.services import ledger_service
from application.services.card_payment_service import CardPaymentService
from domain.common.exceptions import GatewayError
from domain.payment.entity import TransactionStatus


class MemoryDeduplicator:
    def __init__(self):
        self.seen = set()

    async def first_seen(self, key, ttl_seconds):
        if key in self.seen:
            return False
        self.seen.add(key)
        return True

    async def forget(self, key):
        self.seen.discard(key)


def _event(event_id, event_type, obj):
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()


async def _vendor_revenue(uow_factory, vendor_id):
    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(vendor_id)
    return vendor.total_revenue


@pytest.mark.asyncio
async def test_create_intent_records_gateway_reference(ledger, card_gateway, accepted_order, customer):
    service = CardPaymentService(ledger, card_gateway)
    result = await service.create_intent(customer, accepted_order.id)

    assert result.client_secret == "pi_test_1_secret"
    assert result.amount == Decimal("945.00")
    sent = card_gateway.intents[0]
    assert sent["metadata"]["order_id"] == str(accepted_order.id)
    txn = await ledger.fetch(result.transaction_id)
    assert sent["key"] == txn.transaction_number
    assert txn.stripe_payment_intent_id == "pi_test_1"
    assert txn.status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_intent_failure_marks_transaction_failed(ledger, card_gateway, accepted_order, customer):
    async def broken(**kwargs):
        raise GatewayError("api key revoked", provider="stripe")

    card_gateway.create_intent = broken
    service = CardPaymentService(ledger, card_gateway)
    with pytest.raises(GatewayError):
        await service.create_intent(customer, accepted_order.id)

    items, total = await ledger.list_all()
    assert total == 1
    assert items[0].status == "failed"
    assert items[0].failure_reason


@pytest.mark.asyncio
async def test_duplicate_webhook_credits_once(ledger, card_gateway, accepted_order, customer, uow_factory, catalog):
    dedupe = MemoryDeduplicator()
    service = CardPaymentService(ledger, card_gateway, dedupe)
    intent = await service.create_intent(customer, accepted_order.id)
    body = _event("evt_1", "payment_intent.succeeded", {"id": intent.payment_intent_id, "latest_charge": "ch_9"})

    first = await service.handle_webhook({"Stripe-Signature": "t=1,v1=x"}, body)
    second = await service.handle_webhook({"Stripe-Signature": "t=1,v1=x"}, body)

    assert first == {"received": True, "type": "payment_intent.succeeded", "applied": True}
    assert second == {"received": True, "duplicate": True}
    assert await _vendor_revenue(uow_factory, catalog["vendor_id"]) == Decimal("850.50")


@pytest.mark.asyncio
async def test_redelivery_without_dedupe_store_is_still_idempotent(
    ledger, card_gateway, accepted_order, customer, uow_factory, catalog
):
    service = CardPaymentService(ledger, card_gateway)
    intent = await service.create_intent(customer, accepted_order.id)

    for event_id in ("evt_a", "evt_b"):
        await service.handle_webhook(
            {}, _event(event_id, "payment_intent.succeeded", {"id": intent.payment_intent_id})
        )
    assert await _vendor_revenue(uow_factory, catalog["vendor_id"]) == Decimal("850.50")


@pytest.mark.asyncio
async def test_failed_payment_event(ledger, card_gateway, accepted_order, customer, uow_factory):
    service = CardPaymentService(ledger, card_gateway)
    intent = await service.create_intent(customer, accepted_order.id)
    body = _event(
        "evt_f",
        "payment_intent.payment_failed",
        {"id": intent.payment_intent_id, "last_payment_error": {"message": "Card declined", "code": "card_declined"}},
    )
    result = await service.handle_webhook({}, body)
    assert result["applied"] is True

    txn = await ledger.fetch(intent.transaction_id)
    assert txn.status == TransactionStatus.FAILED
    assert txn.failure_reason == "Card declined"
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(accepted_order.id)
    assert order.payment_status.value == "failed"


@pytest.mark.asyncio
async def test_retried_intent_succeeds_after_decline(
    ledger, card_gateway, accepted_order, customer, uow_factory, catalog
):
    service = CardPaymentService(ledger, card_gateway, MemoryDeduplicator())
    intent = await service.create_intent(customer, accepted_order.id)
    declined = _event(
        "evt_1",
        "payment_intent.payment_failed",
        {"id": intent.payment_intent_id, "last_payment_error": {"message": "Card declined"}},
    )
    succeeded = _event("evt_2", "payment_intent.succeeded", {"id": intent.payment_intent_id})

    await service.handle_webhook({}, declined)
    result = await service.handle_webhook({}, succeeded)
    assert result["applied"] is True

    txn = await ledger.fetch(intent.transaction_id)
    assert txn.status == TransactionStatus.COMPLETED
    assert txn.failure_reason is None
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(accepted_order.id)
    assert order.payment_status.value == "paid"

    # a stale decline or a second success changes nothing
    await service.handle_webhook({}, _event("evt_3", "payment_intent.payment_failed", {"id": intent.payment_intent_id}))
    await service.handle_webhook({}, _event("evt_4", "payment_intent.succeeded", {"id": intent.payment_intent_id}))
    assert (await ledger.fetch(intent.transaction_id)).status == TransactionStatus.COMPLETED
    assert await _vendor_revenue(uow_factory, catalog["vendor_id"]) == Decimal("850.50")


@pytest.mark.asyncio
async def test_charge_refunded_syncs_dashboard_refund(ledger, card_gateway, accepted_order, customer):
    service = CardPaymentService(ledger, card_gateway)
    intent = await service.create_intent(customer, accepted_order.id)
    await service.handle_webhook({}, _event("evt_s", "payment_intent.succeeded", {"id": intent.payment_intent_id}))

    refunded = _event(
        "evt_r",
        "charge.refunded",
        {
            "payment_intent": intent.payment_intent_id,
            "amount_refunded": 50000,
            "currency": "usd",
            "refunds": {"data": [{"id": "re_77"}]},
        },
    )
    result = await service.handle_webhook({}, refunded)
    assert result["applied"] is True
    txn = await ledger.fetch(intent.transaction_id)
    assert txn.status == TransactionStatus.PARTIALLY_REFUNDED
    assert txn.refund_amount == Decimal("500.00")


@pytest.mark.asyncio
async def test_unhandled_event_types_are_acknowledged(ledger, card_gateway):
    service = CardPaymentService(ledger, card_gateway)
    result = await service.handle_webhook({}, _event("evt_x", "customer.created", {"id": "cus_1"}))
    assert result == {"received": True, "type": "customer.created", "applied": False}


@pytest.mark.asyncio
async def test_handler_error_releases_dedupe_key(ledger, card_gateway):
    dedupe = MemoryDeduplicator()
    service = CardPaymentService(ledger, card_gateway, dedupe)

    async def broken_settle(event):
        raise RuntimeError("db down")

    ledger.settle = broken_settle
    with pytest.raises(RuntimeError):
        await service.handle_webhook({}, _event("evt_z", "payment_intent.succeeded", {"id": "pi_z"}))
    assert "stripe:evt_z" not in dedupe.seen


class RecordingLogger:
    def __init__(self):
        self.records = []

    def __getattr__(self, level):
        def log(event, **kw):
            self.records.append((level, event, kw))

        return log


@pytest.mark.asyncio
async def test_second_captured_intent_for_paid_order_is_flagged(
    ledger, card_gateway, accepted_order, customer, monkeypatch
):
    service = CardPaymentService(ledger, card_gateway)
    abandoned = await service.create_intent(customer, accepted_order.id)
    retried = await service.create_intent(customer, accepted_order.id)
    await service.handle_webhook({}, _event("evt_a", "payment_intent.succeeded", {"id": retried.payment_intent_id}))

    recorder = RecordingLogger()
    monkeypatch.setattr(ledger_service, "logger", recorder)
    late = await service.handle_webhook(
        {}, _event("evt_b", "payment_intent.succeeded", {"id": abandoned.payment_intent_id})
    )
    assert late["applied"] is True
    assert ("warning", "duplicate_payment") in [(level, event) for level, event, _ in recorder.records]
    flagged = next(kw for level, event, kw in recorder.records if event == "duplicate_payment")
    assert flagged["order_id"] == accepted_order.id
