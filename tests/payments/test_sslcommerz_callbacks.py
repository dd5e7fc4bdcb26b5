from decimal import Decimal

import pytest

from application.services.redirect_payment_service import CANCELLED_REASON, RedirectPaymentService
from domain.common.exceptions import GatewayError, NotFoundError, ValidationError
from domain.payment.entity import TransactionStatus


@pytest.fixture
def redirect_service(ledger, redirect_gateway):
    return RedirectPaymentService(ledger, redirect_gateway)


@pytest.fixture
async def session(redirect_service, accepted_order, customer):
    return await redirect_service.init(customer, accepted_order.id)


@pytest.mark.asyncio
async def test_init_opens_hosted_checkout(session, redirect_gateway, ledger, accepted_order):
    req = redirect_gateway.sessions[0]
    assert req.tran_id == session.transaction_number
    assert req.amount == Decimal("945.00")
    assert req.currency == "BDT"
    assert req.ipn_url == "http://localhost:8000/api/v1/payments/sslcommerz/ipn"
    assert req.value_a == str(accepted_order.id)
    assert session.gateway_url.endswith(session.transaction_number)

    txn = await ledger.fetch(session.transaction_id)
    assert txn.status == TransactionStatus.PENDING
    assert txn.sslcommerz_transaction_id == session.transaction_number


@pytest.mark.asyncio
async def test_success_callback_is_confirmed_with_gateway(
    redirect_service, redirect_gateway, session, ledger, uow_factory, catalog
):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, amount=Decimal("945.00"))

    result = await redirect_service.handle_callback("success", {"tran_id": tran_id, "val_id": f"val-{tran_id}"})
    assert result.applied
    assert result.status == "completed"
    assert result.redirect_url == f"http://localhost:3000/payment/success?transaction={tran_id}"

    txn = await ledger.fetch(session.transaction_id)
    assert txn.sslcommerz_bank_tran_id == f"bank-{tran_id}"
    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(catalog["vendor_id"])
    assert vendor.total_revenue == Decimal("850.50")

    # the IPN for the same payment arrives afterwards
    ipn = await redirect_service.handle_callback("ipn", {"tran_id": tran_id, "val_id": f"val-{tran_id}"})
    assert not ipn.applied
    assert ipn.redirect_url is None
    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(catalog["vendor_id"])
    assert vendor.total_revenue == Decimal("850.50")


@pytest.mark.asyncio
async def test_posted_fields_are_not_trusted(redirect_service, redirect_gateway, session, ledger):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, amount=Decimal("10.00"))

    result = await redirect_service.handle_callback(
        "success", {"tran_id": tran_id, "amount": "945.00", "status": "VALID"}
    )
    assert result.status == "failed"
    assert result.redirect_url.startswith("http://localhost:3000/payment/failed")
    txn = await ledger.fetch(session.transaction_id)
    assert txn.failure_reason == "Gateway validation mismatch (amount)"


@pytest.mark.asyncio
async def test_currency_mismatch_fails(redirect_service, redirect_gateway, session):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, amount=Decimal("945.00"), currency="USD")
    result = await redirect_service.handle_callback("ipn", {"tran_id": tran_id})
    assert result.status == "failed"


@pytest.mark.asyncio
async def test_cancel_callback(redirect_service, redirect_gateway, session, ledger):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, status="CANCELLED", outcome="failure")
    result = await redirect_service.handle_callback("cancel", {"tran_id": tran_id})
    assert result.redirect_url == f"http://localhost:3000/payment/cancelled?transaction={tran_id}"
    txn = await ledger.fetch(session.transaction_id)
    assert txn.status == TransactionStatus.FAILED
    assert txn.failure_reason == CANCELLED_REASON


@pytest.mark.asyncio
async def test_gateway_outage_leaves_transaction_open(redirect_service, redirect_gateway, session, ledger):
    tran_id = session.transaction_number
    redirect_gateway.fail_validation = True

    browser = await redirect_service.handle_callback("fail", {"tran_id": tran_id})
    assert not browser.applied
    assert browser.status == "pending"

    with pytest.raises(GatewayError):
        await redirect_service.handle_callback("ipn", {"tran_id": tran_id})
    txn = await ledger.fetch(session.transaction_id)
    assert txn.status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_pending_validation_waits_for_final_ipn(
    redirect_service, redirect_gateway, session, ledger, uow_factory, accepted_order
):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, status="PENDING", outcome="pending")

    browser = await redirect_service.handle_callback("success", {"tran_id": tran_id, "val_id": f"val-{tran_id}"})
    assert not browser.applied
    assert browser.status == "pending"
    assert browser.redirect_url.startswith("http://localhost:3000/payment/failed")

    with pytest.raises(GatewayError):
        await redirect_service.handle_callback("ipn", {"tran_id": tran_id})
    txn = await ledger.fetch(session.transaction_id)
    assert txn.status == TransactionStatus.PENDING
    assert txn.failure_reason is None

    redirect_gateway.script(tran_id, amount=Decimal("945.00"))
    ipn = await redirect_service.handle_callback("ipn", {"tran_id": tran_id, "val_id": f"val-{tran_id}"})
    assert ipn.applied
    assert ipn.status == "completed"
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(accepted_order.id)
    assert order.payment_status == "paid"


@pytest.mark.asyncio
async def test_callback_input_checks(redirect_service, session):
    with pytest.raises(ValidationError):
        await redirect_service.handle_callback("refund", {"tran_id": session.transaction_number})
    with pytest.raises(ValidationError):
        await redirect_service.handle_callback("ipn", {})
    with pytest.raises(NotFoundError):
        await redirect_service.handle_callback("ipn", {"tran_id": "TXN-20260101-DEADBEEF"})


@pytest.mark.asyncio
async def test_refund_uses_bank_transaction_id(redirect_service, redirect_gateway, session, ledger, admin):
    tran_id = session.transaction_number
    redirect_gateway.script(tran_id, amount=Decimal("945.00"))
    await redirect_service.handle_callback("ipn", {"tran_id": tran_id})

    refunded = await ledger.refund(admin, session.transaction_id, Decimal("100"), "late arrival")
    assert refunded.status == "partially_refunded"
    assert redirect_gateway.refunds == [
        {"bank_tran_id": f"bank-{tran_id}", "amount": Decimal("100.00"), "reference": f"{tran_id}-R100.00"}
    ]
