"""
SSLCommerz hosted-checkout adapter (httpx).

Endpoints:
- session init: POST /gwprocess/v4/api.php (form encoded)
- order validation: GET /validator/api/validationserverAPI.php
- transaction/refund query and refund: GET /validator/api/merchantTransIDvalidationAPI.php

Only the read-only validation/query calls are retried; init and refund are
not idempotent on the provider side.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from application.dtos.payments import (
    GatewayRefund,
    GatewayValidation,
    RedirectSession,
    RedirectSessionRequest,
)
from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


INIT_PATH = "/gwprocess/v4/api.php"
VALIDATION_PATH = "/validator/api/validationserverAPI.php"
MERCHANT_QUERY_PATH = "/validator/api/merchantTransIDvalidationAPI.php"


def _decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class SSLCommerzClient(BasePaymentClient):
    provider = "sslcommerz"

    def __init__(self, settings: PaymentSettings = payment_settings):
        super().__init__(
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        cfg = settings.sslcommerz
        if not cfg.store_id or not cfg.store_password:
            raise RuntimeError("SSLCOMMERZ__STORE_ID / SSLCOMMERZ__STORE_PASSWORD not configured")
        self._store_id = cfg.store_id
        self._store_password = cfg.store_password
        self._base_url = cfg.base_url

    @property
    def _credentials(self) -> dict[str, str]:
        return {"store_id": self._store_id, "store_passwd": self._store_password}

    async def _get_json(self, path: str, params: dict[str, Any], *, retry: bool) -> dict:
        async def do():
            async with self.client() as c:
                resp = await c.get(f"{self._base_url}{path}", params={**params, **self._credentials})
                resp.raise_for_status()
                return resp.json()

        return await self._call(do, retry=retry)

    async def init_session(self, req: RedirectSessionRequest) -> RedirectSession:
        form = {
            **self._credentials,
            "total_amount": str(req.amount),
            "currency": req.currency,
            "tran_id": req.tran_id,
            "success_url": req.success_url,
            "fail_url": req.fail_url,
            "cancel_url": req.cancel_url,
            "ipn_url": req.ipn_url,
            "shipping_method": "NO",
            "num_of_item": 1,
            "product_name": req.product_name,
            "product_category": "Service",
            "product_profile": "general",
            "cus_name": req.customer_name,
            "cus_email": req.customer_email,
            "cus_phone": req.customer_phone,
            "cus_add1": req.customer_address or "N/A",
            "cus_city": req.customer_city or "N/A",
            "cus_postcode": req.customer_postcode or "1000",
            "cus_country": req.customer_country,
        }
        for key in ("value_a", "value_b", "value_c", "value_d"):
            value = getattr(req, key)
            if value is not None:
                form[key] = value

        async def do():
            async with self.client() as c:
                resp = await c.post(f"{self._base_url}{INIT_PATH}", data=form)
                resp.raise_for_status()
                return resp.json()

        self._log("sslcommerz_session_init", tran_id=req.tran_id, amount=str(req.amount))
        data = await self._call(do)
        url = data.get("GatewayPageURL")
        if data.get("status") != "SUCCESS" or not url:
            raise PaymentProviderError(
                data.get("failedreason") or "GatewayPageURL missing from response",
                provider=self.provider,
                provider_code=data.get("status"),
            )
        return RedirectSession(gateway_url=url, session_key=data.get("sessionkey"), raw=data)

    def _to_validation(self, data: dict) -> GatewayValidation:
        status = str(data.get("status") or "UNKNOWN").upper()
        return GatewayValidation(
            status=status,
            outcome=self._outcome(status),
            tran_id=data.get("tran_id"),
            amount=_decimal(data.get("amount")),
            currency=data.get("currency") or data.get("currency_type"),
            val_id=data.get("val_id"),
            bank_tran_id=data.get("bank_tran_id"),
            reason=data.get("error") or data.get("failedreason"),
            raw=data,
        )

    async def validate(self, val_id: str) -> GatewayValidation:
        data = await self._get_json(VALIDATION_PATH, {"val_id": val_id, "v": 1, "format": "json"}, retry=True)
        result = self._to_validation(data)
        self._log("sslcommerz_validated", val_id=val_id, status=result.status, tran_id=result.tran_id)
        return result

    async def query_by_transaction(self, tran_id: str) -> GatewayValidation:
        data = await self._get_json(MERCHANT_QUERY_PATH, {"tran_id": tran_id, "format": "json"}, retry=True)
        elements = data.get("element") or []
        if not elements:
            self._log("sslcommerz_query_empty", tran_id=tran_id, api_connect=data.get("APIConnect"))
            return GatewayValidation(
                status="NOT_FOUND",
                outcome="failure",
                tran_id=tran_id,
                reason="Transaction not found at gateway",
                raw=data,
            )
        # most recent attempt first
        result = self._to_validation(elements[0])
        self._log("sslcommerz_queried", tran_id=tran_id, status=result.status)
        return result

    async def refund(
        self,
        *,
        bank_tran_id: str,
        amount: Decimal,
        remarks: str,
        reference: str,
    ) -> GatewayRefund:
        params = {
            "bank_tran_id": bank_tran_id,
            "refund_amount": str(amount),
            "refund_remarks": remarks,
            "refe_id": reference,
            "v": 1,
            "format": "json",
        }
        self._log("sslcommerz_refund_init", bank_tran_id=bank_tran_id, amount=str(amount))
        data = await self._get_json(MERCHANT_QUERY_PATH, params, retry=False)
        if data.get("APIConnect") != "DONE" or data.get("status") != "success" or not data.get("refund_ref_id"):
            raise PaymentProviderError(
                data.get("errorReason") or "Refund initiation failed",
                provider=self.provider,
                provider_code=data.get("status"),
            )
        return GatewayRefund(
            refund_id=str(data["refund_ref_id"]),
            status=str(data.get("status")),
            provider=self.provider,
            amount=amount,
            raw=data,
        )

    async def refund_query(self, refund_ref_id: str) -> dict[str, Any]:
        return await self._get_json(
            MERCHANT_QUERY_PATH, {"refund_ref_id": refund_ref_id, "format": "json"}, retry=True
        )
