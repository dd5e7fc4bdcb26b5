from decimal import Decimal

import pytest

from application.dtos.payments import CardSettlement
from application.services.card_payment_service import CardPaymentService
from application.services.ledger_service import refund_idempotency_key
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from domain.payment.entity import PaymentMethod, TransactionStatus


async def _paid_card_transaction(ledger, card_gateway, customer, order_id):
    service = CardPaymentService(ledger, card_gateway)
    intent = await service.create_intent(customer, order_id)
    result = await ledger.settle(
        CardSettlement(
            transaction_ref=intent.payment_intent_id,
            ref_kind="stripe_intent",
            outcome="success",
            charge_id="ch_1",
        )
    )
    return intent, result


@pytest.mark.asyncio
async def test_payment_requires_accepted_order(ledger, placed_order, customer):
    with pytest.raises(InvalidStateError):
        await ledger.initiate(customer, placed_order.id, PaymentMethod.STRIPE)


@pytest.mark.asyncio
async def test_only_the_customer_may_pay(ledger, accepted_order, vendor_actor):
    with pytest.raises(ForbiddenError):
        await ledger.initiate(vendor_actor, accepted_order.id, PaymentMethod.STRIPE)
    with pytest.raises(NotFoundError):
        await ledger.initiate(vendor_actor, 4242, PaymentMethod.STRIPE)


@pytest.mark.asyncio
async def test_initiate_splits_commission(ledger, accepted_order, customer):
    txn, order = await ledger.initiate(customer, accepted_order.id, PaymentMethod.STRIPE)
    assert txn.status == TransactionStatus.PENDING
    assert txn.transaction_number.startswith("TXN-")
    assert txn.amount == Decimal("945.00")
    assert txn.commission_amount == Decimal("94.50")
    assert txn.vendor_amount == Decimal("850.50")
    assert txn.commission_amount + txn.vendor_amount == txn.amount

    manual, _ = await ledger.initiate(customer, accepted_order.id, PaymentMethod.CASH)
    assert manual.status == TransactionStatus.PROCESSING


@pytest.mark.asyncio
async def test_settle_credits_vendor_exactly_once(
    ledger, card_gateway, accepted_order, customer, uow_factory, notifier, catalog
):
    intent, first = await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)
    assert first.applied
    assert first.transaction.status == TransactionStatus.COMPLETED
    assert first.transaction.stripe_charge_id == "ch_1"

    again = await ledger.settle(
        CardSettlement(transaction_ref=intent.payment_intent_id, ref_kind="stripe_intent", outcome="success")
    )
    assert not again.applied
    late_failure = await ledger.settle(
        CardSettlement(transaction_ref=intent.payment_intent_id, ref_kind="stripe_intent", outcome="failure")
    )
    assert not late_failure.applied
    assert late_failure.transaction.status == TransactionStatus.COMPLETED

    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(catalog["vendor_id"])
        order = await uow.order_repository.get_by_id(accepted_order.id)
    assert vendor.total_revenue == Decimal("850.50")
    assert vendor.commission == Decimal("94.50")
    assert order.payment_status.value == "paid"
    assert notifier.names().count("PaymentCompleted") == 1

    # reconciliation after the fact changes nothing
    result = await ledger.reconcile(first.transaction.id)
    assert result["vendor_credited"] is False
    assert await ledger.reconcile_pending() == 0


@pytest.mark.asyncio
async def test_settle_unknown_reference_is_ignored(ledger):
    result = await ledger.settle(
        CardSettlement(transaction_ref="pi_missing", ref_kind="stripe_intent", outcome="success")
    )
    assert result.transaction is None
    assert not result.applied


@pytest.mark.asyncio
async def test_second_payment_blocked_once_paid(ledger, card_gateway, accepted_order, customer):
    await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)
    with pytest.raises(ConflictError):
        await ledger.initiate(customer, accepted_order.id, PaymentMethod.STRIPE)


@pytest.mark.asyncio
async def test_partial_refund_goes_to_gateway_first(
    ledger, card_gateway, accepted_order, customer, admin, uow_factory, notifier
):
    intent, settled = await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)
    txn = settled.transaction

    refunded = await ledger.refund(admin, txn.id, Decimal("500"), "partial service")
    assert refunded.status == "partially_refunded"
    assert refunded.refund_amount == Decimal("500.00")
    assert card_gateway.refunds == [
        {
            "intent_id": intent.payment_intent_id,
            "amount": Decimal("500.00"),
            "key": refund_idempotency_key(txn.transaction_number, Decimal("500")),
        }
    ]
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(accepted_order.id)
    assert order.payment_status.value == "refunded"
    assert "PaymentRefunded" in notifier.names()

    with pytest.raises(ValidationError):
        await ledger.refund(admin, txn.id, Decimal("445.01"))

    rest = await ledger.refund(admin, txn.id)
    assert rest.status == "refunded"
    assert rest.refund_amount == Decimal("945.00")
    assert card_gateway.refunds[-1]["amount"] == Decimal("445.00")

    with pytest.raises(InvalidStateError):
        await ledger.refund(admin, txn.id, Decimal("1"))


@pytest.mark.asyncio
async def test_gateway_refund_failure_leaves_ledger_untouched(
    ledger, card_gateway, accepted_order, customer, admin
):
    _, settled = await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)

    async def boom(**kwargs):
        raise GatewayError("card declined refund", provider="stripe")

    card_gateway.refund = boom
    with pytest.raises(GatewayError):
        await ledger.refund(admin, settled.transaction.id, Decimal("10"))
    txn = await ledger.fetch(settled.transaction.id)
    assert txn.status == TransactionStatus.COMPLETED
    assert txn.refund_amount == Decimal("0.00")


@pytest.mark.asyncio
async def test_dashboard_refund_is_recorded_once(ledger, card_gateway, accepted_order, customer):
    intent, settled = await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)
    assert await ledger.record_gateway_refund(intent.payment_intent_id, Decimal("945.00"), "re_dash")
    assert not await ledger.record_gateway_refund(intent.payment_intent_id, Decimal("945.00"), "re_dash")
    txn = await ledger.fetch(settled.transaction.id)
    assert txn.status == TransactionStatus.REFUNDED
    assert txn.refund_id == "re_dash"


@pytest.mark.asyncio
async def test_statistics_count_only_settled_money(ledger, card_gateway, accepted_order, customer):
    await _paid_card_transaction(ledger, card_gateway, customer, accepted_order.id)
    stats = await ledger.statistics()
    assert stats["total_amount"] == Decimal("945.00")
    assert stats["total_commission"] == Decimal("94.50")
    assert stats["by_status"]["completed"]["count"] == 1
