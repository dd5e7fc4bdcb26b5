from decimal import Decimal

import pytest

from application.dtos.payments import CardSettlement
from application.dtos.payouts import PayoutCompleteDTO, PayoutProcessDTO, PayoutRequestDTO
from application.services.card_payment_service import CardPaymentService
from application.services.payout_service import PayoutService
from domain.common.actor import Actor, Role
from domain.common.exceptions import ConflictError, ForbiddenError, InvalidStateError, NoFundsError
from domain.payout.entity import PayoutStatus
from infrastructure.models import VendorModel
from infrastructure.repositories.payout_repository import SQLAlchemyPayoutRepository


@pytest.fixture
def payout_service(uow_factory, marketplace_config, notifier):
    return PayoutService(uow_factory, marketplace_config, notifier)


@pytest.fixture
async def paid_transaction(ledger, card_gateway, accepted_order, customer):
    intent = await CardPaymentService(ledger, card_gateway).create_intent(customer, accepted_order.id)
    result = await ledger.settle(
        CardSettlement(transaction_ref=intent.payment_intent_id, ref_kind="stripe_intent", outcome="success")
    )
    return result.transaction


def _request(**extra):
    return PayoutRequestDTO(payment_method="bank_transfer", bank_details={"account": "0123"}, **extra)


@pytest.mark.asyncio
async def test_request_links_completed_transactions(payout_service, paid_transaction, vendor_actor, notifier):
    payout = await payout_service.request(vendor_actor, _request())

    assert payout.payout_number.startswith("PO-")
    assert payout.status == "pending"
    assert payout.amount == Decimal("850.50")
    assert payout.currency == "USD"
    assert payout.transaction_ids == [paid_transaction.id]
    assert payout.transaction_count == 1
    assert "PayoutRequested" in notifier.names()

    balance = await payout_service.available_balance(vendor_actor)
    assert balance.available_balance == Decimal("0")

    with pytest.raises(NoFundsError):
        await payout_service.request(vendor_actor, _request())


@pytest.mark.asyncio
async def test_request_without_funds(payout_service, catalog, vendor_actor):
    with pytest.raises(NoFundsError):
        await payout_service.request(vendor_actor, _request())
    items, total = await payout_service.list_for_vendor(vendor_actor)
    assert total == 0


@pytest.mark.asyncio
async def test_lost_save_rolls_back_request(payout_service, paid_transaction, vendor_actor, monkeypatch):
    async def stale_save(self, payout, expected_status=None):
        return False

    monkeypatch.setattr(SQLAlchemyPayoutRepository, "save", stale_save)
    with pytest.raises(ConflictError):
        await payout_service.request(vendor_actor, _request())
    monkeypatch.undo()

    balance = await payout_service.available_balance(vendor_actor)
    assert balance.available_balance == Decimal("850.50")
    items, total = await payout_service.list_for_vendor(vendor_actor)
    assert total == 0


def test_payout_statuses():
    assert {s.value for s in PayoutStatus} == {"pending", "processing", "completed", "cancelled"}


@pytest.mark.asyncio
async def test_reject_releases_transactions(payout_service, paid_transaction, vendor_actor, admin, ledger):
    payout = await payout_service.request(vendor_actor, _request())
    rejected = await payout_service.process(
        admin, payout.id, PayoutProcessDTO(action="reject", notes="bank details incomplete")
    )
    assert rejected.status == "cancelled"

    txn = await ledger.fetch(paid_transaction.id)
    assert txn.payout_id is None
    balance = await payout_service.available_balance(vendor_actor)
    assert balance.available_balance == Decimal("850.50")

    again = await payout_service.request(vendor_actor, _request())
    assert again.amount == Decimal("850.50")


@pytest.mark.asyncio
async def test_approve_then_complete(payout_service, paid_transaction, vendor_actor, admin, notifier):
    payout = await payout_service.request(vendor_actor, _request())

    with pytest.raises(InvalidStateError):
        await payout_service.complete(admin, payout.id, PayoutCompleteDTO(gateway_transaction_id="WIRE-1"))

    approved = await payout_service.process(admin, payout.id, PayoutProcessDTO(action="approve"))
    assert approved.status == "processing"
    assert approved.processed_by == admin.id

    done = await payout_service.complete(admin, payout.id, PayoutCompleteDTO(gateway_transaction_id="WIRE-1"))
    assert done.status == "completed"
    assert done.gateway_transaction_id == "WIRE-1"
    assert done.completed_at is not None

    with pytest.raises(InvalidStateError):
        await payout_service.process(admin, payout.id, PayoutProcessDTO(action="reject"))
    assert notifier.names()[-2:] == ["PayoutApproved", "PayoutCompleted"]

    stats = await payout_service.statistics()
    assert stats["total_payouts"] == 1
    assert stats["by_status"]["completed"]["count"] == 1


@pytest.mark.asyncio
async def test_unapproved_vendor_cannot_request(payout_service, session_factory):
    async with session_factory() as session:
        session.add(VendorModel(user_id=70, company_name="New Co", approval_status="pending"))
        await session.commit()
    with pytest.raises(ForbiddenError):
        await payout_service.request(Actor(id=70, role=Role.VENDOR), _request())


@pytest.mark.asyncio
async def test_vendor_sees_only_own_payouts(payout_service, paid_transaction, vendor_actor, session_factory, admin):
    payout = await payout_service.request(vendor_actor, _request())
    async with session_factory() as session:
        session.add(VendorModel(user_id=71, company_name="Rival", approval_status="approved"))
        await session.commit()

    with pytest.raises(ForbiddenError):
        await payout_service.get(Actor(id=71, role=Role.VENDOR), payout.id)
    assert (await payout_service.get(admin, payout.id)).id == payout.id
