from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import RedirectSessionRequest
from core.settings import PaymentSettings, SSLCommerzSettings
from infrastructure.external.payments import get_redirect_gateway
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.sslcommerz_client import SSLCommerzClient


class _MapClient(BasePaymentClient):
    provider = "sslcommerz"


def test_provider_status_mapping():
    c = _MapClient()
    assert c._outcome("VALID") == "success"
    assert c._outcome("VALIDATED") == "success"
    assert c._outcome("CANCELLED") == "failure"
    assert c._outcome("UNATTEMPTED") == "pending"
    assert c._outcome(None) == "pending"


def _client(handler) -> SSLCommerzClient:
    settings = PaymentSettings(sslcommerz=SSLCommerzSettings(store_id="teststore", store_password="secret"))
    client = SSLCommerzClient(settings)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def test_unconfigured_redirect_gateway_is_none():
    assert get_redirect_gateway(PaymentSettings(sslcommerz=SSLCommerzSettings())) is None


@pytest.mark.asyncio
async def test_validate_maps_gateway_answer():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "status": "VALID",
                "tran_id": "TXN-20260101-0000ABCD",
                "val_id": "v-1",
                "amount": "945.00",
                "currency": "BDT",
                "bank_tran_id": "B-77",
                "card_type": "VISA-Dutch Bangla",
            },
        )

    client = _client(handler)
    try:
        result = await client.validate("v-1")
    finally:
        await client.aclose()

    assert result.outcome == "success"
    assert result.amount == Decimal("945.00")
    assert result.bank_tran_id == "B-77"
    assert seen[0].url.host == "sandbox.sslcommerz.com"
    assert seen[0].url.params["store_id"] == "teststore"
    assert seen[0].url.params["val_id"] == "v-1"


@pytest.mark.asyncio
async def test_query_without_elements_is_a_failure():
    client = _client(lambda request: httpx.Response(200, json={"APIConnect": "DONE", "no_of_trans_found": 0}))
    try:
        result = await client.query_by_transaction("TXN-X")
    finally:
        await client.aclose()
    assert result.status == "NOT_FOUND"
    assert result.outcome == "failure"


@pytest.mark.asyncio
async def test_init_session_requires_gateway_url():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "FAILED", "failedreason": "Store Credential Error"})

    client = _client(handler)
    req = RedirectSessionRequest(
        tran_id="TXN-1",
        amount=Decimal("945.00"),
        currency="BDT",
        success_url="http://b/s",
        fail_url="http://b/f",
        cancel_url="http://b/c",
        ipn_url="http://b/i",
        product_name="Deep Clean",
        customer_name="Alice",
        customer_email="alice@example.com",
        customer_phone="+8801700000000",
    )
    try:
        with pytest.raises(PaymentProviderError) as ei:
            await client.init_session(req)
    finally:
        await client.aclose()
    assert ei.value.reason == "Store Credential Error"


@pytest.mark.asyncio
async def test_http_error_becomes_provider_error():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    try:
        with pytest.raises(PaymentProviderError):
            await client.refund(bank_tran_id="B-77", amount=Decimal("10"), remarks="r", reference="TXN-1-R10.00")
    finally:
        await client.aclose()
