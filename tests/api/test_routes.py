import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from api.dependencies import decode_actor, get_card_payment_service
from application.services.card_payment_service import CardPaymentService
from application.services.ledger_service import TransactionLedger
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException, business_code_to_http_status
from domain.common.actor import Role
from infrastructure.composition import uow_factory as build_uow_factory
from main import app
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


def _token(**claims):
    payload = {"sub": "7", "role": "user", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def test_routes_registered():
    routes = {r.path for r in app.routes}
    for path in (
        "/api/v1/orders",
        "/api/v1/orders/{order_id}/apply-coupon",
        "/api/v1/orders/vendor/{order_id}/accept",
        "/api/v1/payments/create-intent",
        "/api/v1/payments/webhook/stripe",
        "/api/v1/payments/sslcommerz/ipn",
        "/api/v1/payments/admin/{transaction_id}/refund",
        "/api/v1/payouts/request",
        "/api/v1/payouts/balance",
        "/api/v1/coupons/validate",
    ):
        assert path in routes, path


def test_business_codes_map_to_http_status():
    assert business_code_to_http_status(BusinessCode.NOT_FOUND) == 404
    assert business_code_to_http_status(BusinessCode.CONFLICT) == 409
    assert business_code_to_http_status(BusinessCode.INVALID_STATE) == 400
    assert business_code_to_http_status(BusinessCode.FORBIDDEN) == 403
    assert business_code_to_http_status(BusinessCode.SERVICE_UNAVAILABLE) == 503
    assert business_code_to_http_status(BusinessCode.GATEWAY_ERROR) == 502
    assert business_code_to_http_status(PaymentCode.SIGNATURE_ERROR) == 400
    assert business_code_to_http_status(PaymentCode.TIMEOUT) == 504


def test_decode_actor_reads_claims():
    actor = decode_actor(_token(role="vendor", email="v@example.com"))
    assert actor.id == 7
    assert actor.role == Role.VENDOR
    assert actor.email == "v@example.com"


def test_decode_actor_rejects_bad_tokens():
    with pytest.raises(TokenExpiredException):
        decode_actor(_token(exp=datetime.now(timezone.utc) - timedelta(minutes=1)))
    with pytest.raises(UnauthorizedException):
        decode_actor(_token(type="refresh"))
    with pytest.raises(UnauthorizedException):
        decode_actor(_token(role="overlord"))
    with pytest.raises(UnauthorizedException):
        decode_actor("not-a-jwt")


def test_protected_route_requires_token():
    client = TestClient(app)
    resp = client.post("/api/v1/payments/create-intent", json={"order_id": 1})
    assert resp.status_code == 401
    assert resp.json()["code"] == BusinessCode.UNAUTHORIZED


@pytest.fixture
def webhook_client(card_gateway, gateway_config):
    # ignored event types never reach the database
    ledger = TransactionLedger(build_uow_factory(), gateway_config)
    app.dependency_overrides[get_card_payment_service] = lambda: CardPaymentService(ledger, card_gateway)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_stripe_webhook_route(webhook_client):
    body = json.dumps({"id": "evt_9", "type": "customer.created", "data": {"object": {}}})
    resp = webhook_client.post(
        "/api/v1/payments/webhook/stripe",
        content=body,
        headers={"content-type": "application/json", "Stripe-Signature": "t=1,v1=x"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"received": True, "type": "customer.created", "applied": False}


def test_stripe_webhook_requires_json(webhook_client):
    resp = webhook_client.post(
        "/api/v1/payments/webhook/stripe", content="id=evt", headers={"content-type": "text/plain"}
    )
    assert resp.status_code == 400
