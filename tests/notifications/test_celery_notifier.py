import pytest

from application.services.notification_service import render
from application.services.order_service import OrderService
from domain.payout.events import PayoutRejected
from infrastructure.tasks import CeleryNotifier
from infrastructure.tasks.utils.dispatcher import SEND_EMAIL_TASK


class RecordingDispatcher:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send_email(self, message):
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.sent.append(message)


def test_email_task_name_matches_registered_task():
    assert SEND_EMAIL_TASK == "infrastructure.tasks.tasks.notifications.send_email"


@pytest.mark.asyncio
async def test_order_placed_mails_customer_and_vendor(uow_factory, marketplace_config, catalog, customer, order_request):
    dispatcher = RecordingDispatcher()
    service = OrderService(uow_factory, marketplace_config, CeleryNotifier(dispatcher))
    order = await service.create(customer, order_request(catalog["service_id"]))

    assert [m["to"] for m in dispatcher.sent] == ["alice@example.com", "vendor@example.com"]
    assert all(m["event"] == "OrderPlaced" for m in dispatcher.sent)
    assert order.order_number in dispatcher.sent[0]["subject"]
    assert dispatcher.sent[0]["event_id"] == dispatcher.sent[1]["event_id"]


@pytest.mark.asyncio
async def test_broker_failure_is_logged_not_raised(uow_factory, marketplace_config, catalog, customer, order_request):
    service = OrderService(uow_factory, marketplace_config, CeleryNotifier(RecordingDispatcher(fail=True)))
    order = await service.create(customer, order_request(catalog["service_id"]))
    assert order.status == "pending"


def test_events_without_recipient_render_nothing():
    event = PayoutRejected(
        payout_id=1, payout_number="PO-1", vendor_id=2, amount="10.00", currency="USD", vendor_email=None
    )
    assert render(event) == []
    assert render(object()) == []
