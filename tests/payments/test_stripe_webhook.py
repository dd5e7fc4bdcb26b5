from decimal import Decimal

import pytest


stripe = pytest.importorskip("stripe")

from core.settings import PaymentSettings, StripeSettings
from infrastructure.external.payments import get_card_gateway
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.external.payments.stripe_client import StripeClient


def _settings(**stripe_kwargs):
    values = {"secret_key": "sk_test_123", "webhook_secret": "whsec_test"}
    values.update(stripe_kwargs)
    return PaymentSettings(stripe=StripeSettings(**values))


def test_stripe_parse_webhook(monkeypatch):
    seen = {}

    # Fake construct_event to bypass cryptography
    class _FakeWebhook:
        @staticmethod
        def construct_event(payload, sig_header, secret, tolerance=None):
            seen.update(sig=sig_header, secret=secret, tolerance=tolerance)
            return {
                "id": "evt_1",
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": "pi_1", "status": "succeeded"}},
            }

    monkeypatch.setattr(stripe, "Webhook", _FakeWebhook)

    gw = get_card_gateway(_settings())
    assert isinstance(gw, StripeClient)
    evt = gw.parse_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")
    assert evt.id == "evt_1"
    assert evt.type == "payment_intent.succeeded"
    assert evt.provider == "stripe"
    assert evt.data["object"]["id"] == "pi_1"
    assert seen == {"sig": "t=1,v1=abc", "secret": "whsec_test", "tolerance": 300}


def test_stripe_bad_signature(monkeypatch):
    class _RejectingWebhook:
        @staticmethod
        def construct_event(payload, sig_header, secret, tolerance=None):
            raise ValueError("No signatures found matching the expected signature")

    monkeypatch.setattr(stripe, "Webhook", _RejectingWebhook)
    gw = StripeClient(_settings())
    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook({"stripe-signature": "t=1,v1=forged"}, b"{}")


def test_stripe_missing_signature_header():
    gw = StripeClient(_settings())
    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook({}, b"{}")


def test_stripe_missing_webhook_secret():
    gw = StripeClient(_settings(webhook_secret=None))
    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook({"Stripe-Signature": "t=1,v1=abc"}, b"{}")


def test_unconfigured_card_gateway_is_none():
    assert get_card_gateway(PaymentSettings(stripe=StripeSettings())) is None


@pytest.mark.asyncio
async def test_create_intent_sends_minor_units(monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return {"id": "pi_9", "status": "requires_payment_method", "client_secret": "pi_9_secret"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gw = StripeClient(_settings())
    intent = await gw.create_intent(
        amount=Decimal("945.00"), currency="USD", metadata={"order_id": "1"}, idempotency_key="TXN-1"
    )
    assert intent.intent_id == "pi_9"
    assert intent.client_secret == "pi_9_secret"
    assert calls[0]["amount"] == 94500
    assert calls[0]["currency"] == "usd"
    assert calls[0]["idempotency_key"] == "TXN-1"
