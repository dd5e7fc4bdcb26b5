from decimal import Decimal

import pytest

from application.dtos.payments import ManualPaymentRequest, ProofUploadRequest, VerifyPaymentRequest
from application.services.manual_payment_service import REJECTED_REASON, ManualPaymentService
from domain.common.actor import Actor, Role
from domain.common.exceptions import ForbiddenError, InvalidStateError, ValidationError
from domain.payment.entity import PaymentMethod, TransactionStatus


@pytest.fixture
def manual_service(ledger):
    return ManualPaymentService(ledger)


@pytest.fixture
async def submitted(manual_service, accepted_order, customer):
    return await manual_service.submit(
        customer,
        ManualPaymentRequest(order_id=accepted_order.id, payment_method="bank_transfer", reference_number="BT-991"),
    )


@pytest.mark.asyncio
async def test_submit_waits_for_verification(submitted, manual_service):
    assert submitted.status == "processing"
    assert submitted.payment_method == "bank_transfer"
    assert submitted.metadata["reference_number"] == "BT-991"

    items, total = await manual_service.pending_verifications()
    assert total == 1
    assert items[0].id == submitted.id


@pytest.mark.asyncio
async def test_only_the_payer_uploads_proof(manual_service, submitted, customer):
    with pytest.raises(ForbiddenError):
        await manual_service.upload_proof(
            Actor(id=99, role=Role.USER), submitted.id, ProofUploadRequest(proof_url="files/abc.png")
        )

    updated = await manual_service.upload_proof(
        customer, submitted.id, ProofUploadRequest(proof_url="files/abc.png", details={"bank": "City Bank"})
    )
    assert updated.metadata["payment_proof_url"] == "files/abc.png"
    assert updated.metadata["proof_details"] == {"bank": "City Bank"}
    assert updated.metadata["reference_number"] == "BT-991"


@pytest.mark.asyncio
async def test_approval_credits_vendor(manual_service, submitted, admin, uow_factory, catalog, notifier):
    approved = await manual_service.verify(
        admin, submitted.id, VerifyPaymentRequest(action="approve", notes="matched statement")
    )
    assert approved.status == "completed"
    assert approved.metadata["verified_by"] == admin.id

    async with uow_factory(readonly=True) as uow:
        vendor = await uow.vendor_repository.get_by_id(catalog["vendor_id"])
        order = await uow.order_repository.get_by_id(submitted.order_id)
    assert vendor.total_revenue == Decimal("850.50")
    assert order.payment_status.value == "paid"
    assert "PaymentCompleted" in notifier.names()

    with pytest.raises(InvalidStateError):
        await manual_service.verify(admin, submitted.id, VerifyPaymentRequest(action="reject"))


@pytest.mark.asyncio
async def test_rejection_marks_failed(manual_service, submitted, admin, ledger, customer):
    rejected = await manual_service.verify(admin, submitted.id, VerifyPaymentRequest(action="reject"))
    assert rejected.status == "failed"
    assert rejected.failure_reason == REJECTED_REASON

    with pytest.raises(InvalidStateError):
        await manual_service.upload_proof(customer, submitted.id, ProofUploadRequest(proof_url="late.png"))

    txn = await ledger.fetch(submitted.id)
    assert txn.status == TransactionStatus.FAILED


@pytest.mark.asyncio
async def test_verify_refuses_card_transactions(manual_service, ledger, accepted_order, customer, admin):
    txn, _ = await ledger.initiate(customer, accepted_order.id, PaymentMethod.STRIPE)
    with pytest.raises(ValidationError):
        await manual_service.verify(admin, txn.id, VerifyPaymentRequest(action="approve"))


@pytest.mark.asyncio
async def test_verification_stats(manual_service, submitted, admin):
    stats = await manual_service.verification_stats()
    assert stats.pending == 1
    assert stats.pending_amount == Decimal("945.00")

    await manual_service.verify(admin, submitted.id, VerifyPaymentRequest(action="approve"))
    stats = await manual_service.verification_stats()
    assert stats.pending == 0
    assert stats.approved == 1
    assert stats.rejected == 0
