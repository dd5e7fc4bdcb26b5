"""
Redirect payments: SSLCommerz hosted checkout with IPN.

Posted callback fields are never trusted; every callback is confirmed with the
gateway's validation/query API before the ledger is touched.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from application.dtos.payments import (
    CallbackResult,
    GatewayValidation,
    RedirectInitResult,
    RedirectSessionRequest,
    RedirectSettlement,
)
from application.ports.payment_gateway import RedirectPaymentGateway
from application.services.ledger_service import TransactionLedger
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.exceptions import GatewayError, NotFoundError, ValidationError
from domain.common.money import to_money
from domain.payment.entity import PaymentMethod, Transaction, TransactionStatus


logger = get_logger(__name__)

INIT_FAILURE_REASON = "Failed to initialize payment gateway"
CANCELLED_REASON = "Payment cancelled by customer"

CALLBACK_KINDS = ("success", "fail", "cancel", "ipn")
BROWSER_KINDS = frozenset({"success", "fail", "cancel"})


class RedirectPaymentService:
    def __init__(self, ledger: TransactionLedger, gateway: RedirectPaymentGateway) -> None:
        self._ledger = ledger
        self._gateway = gateway

    async def init(self, actor: Actor, order_id: int) -> RedirectInitResult:
        config = self._ledger.config
        txn, order = await self._ledger.initiate(
            actor, order_id, PaymentMethod.SSLCOMMERZ, currency=config.redirect_currency
        )
        req = RedirectSessionRequest(
            tran_id=txn.transaction_number,
            amount=txn.amount,
            currency=txn.currency,
            success_url=config.callback_url("success"),
            fail_url=config.callback_url("fail"),
            cancel_url=config.callback_url("cancel"),
            ipn_url=config.callback_url("ipn"),
            product_name=order.service_name,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            customer_address=order.address.street,
            customer_city=order.address.city,
            customer_postcode=order.address.zip_code,
            customer_country=order.address.country or "Bangladesh",
            value_a=str(order.id),
            value_b=str(order.user_id),
            value_c=str(txn.id),
            value_d=str(order.vendor_id),
        )
        try:
            session = await self._gateway.init_session(req)
        except GatewayError as exc:
            logger.error("redirect_session_failed", transaction_id=txn.id, reason=exc.reason)
            await self._ledger.mark_failed(txn.id, INIT_FAILURE_REASON, {"error": exc.reason})
            raise

        await self._ledger.attach_gateway_reference(
            txn.id,
            {
                "sslcommerz_transaction_id": txn.transaction_number,
                "sslcommerz_session_key": session.session_key,
            },
        )
        logger.info("redirect_session_created", transaction_id=txn.id, order_id=order.id)
        return RedirectInitResult(
            gateway_url=session.gateway_url,
            session_key=session.session_key,
            transaction_id=txn.id,
            transaction_number=txn.transaction_number,
        )

    # ---- callbacks ----

    def _result_page(self, kind: str, txn: Transaction) -> Optional[str]:
        if kind not in BROWSER_KINDS:
            return None
        if txn.status in (TransactionStatus.COMPLETED, TransactionStatus.PARTIALLY_REFUNDED):
            outcome = "success"
        elif kind == "cancel":
            outcome = "cancelled"
        else:
            outcome = "failed"
        return self._ledger.config.frontend_result_url(outcome, txn.transaction_number)

    async def _confirm(self, tran_id: str, val_id: Optional[str]) -> GatewayValidation:
        if val_id:
            return await self._gateway.validate(val_id)
        return await self._gateway.query_by_transaction(tran_id)

    @staticmethod
    def _mismatch(txn: Transaction, validation: GatewayValidation) -> Optional[str]:
        if validation.tran_id != txn.transaction_number:
            return "tran_id"
        if validation.amount is None or to_money(validation.amount) != txn.amount:
            return "amount"
        if (validation.currency or "").upper() != txn.currency:
            return "currency"
        return None

    async def handle_callback(self, kind: str, form: Mapping[str, Any]) -> CallbackResult:
        if kind not in CALLBACK_KINDS:
            raise ValidationError(f"Unknown callback kind: {kind}", field="kind")
        tran_id = form.get("tran_id")
        if not tran_id:
            raise ValidationError("tran_id is required", field="tran_id")

        txn = await self._ledger.fetch_by_number(str(tran_id))
        if txn is None or txn.payment_method != PaymentMethod.SSLCOMMERZ:
            raise NotFoundError("Transaction", tran_id)

        logger.info("redirect_callback_received", kind=kind, transaction_id=txn.id, status=txn.status.value)
        if not txn.is_open:
            return CallbackResult(
                transaction_number=txn.transaction_number,
                status=txn.status.value,
                applied=False,
                redirect_url=self._result_page(kind, txn),
            )

        try:
            validation = await self._confirm(txn.transaction_number, form.get("val_id"))
        except GatewayError as exc:
            logger.error("redirect_validation_failed", kind=kind, transaction_id=txn.id, reason=exc.reason)
            if kind not in BROWSER_KINDS:
                raise
            # Leave the transaction open; the IPN retry will settle it
            return CallbackResult(
                transaction_number=txn.transaction_number,
                status=txn.status.value,
                applied=False,
                redirect_url=self._result_page(kind, txn),
            )

        if validation.outcome == "pending":
            # 网关尚未给出终态，交易保持打开，IPN 由网关重投
            logger.warning(
                "redirect_validation_pending",
                kind=kind,
                transaction_id=txn.id,
                validation_status=validation.status,
            )
            if kind not in BROWSER_KINDS:
                raise GatewayError(
                    f"Gateway status {validation.status} is not final",
                    provider="sslcommerz",
                )
            return CallbackResult(
                transaction_number=txn.transaction_number,
                status=txn.status.value,
                applied=False,
                redirect_url=self._result_page(kind, txn),
            )

        mismatch = self._mismatch(txn, validation) if validation.outcome == "success" else None
        if validation.outcome == "success" and mismatch is None:
            outcome, reason = "success", None
        else:
            outcome = "failure"
            if mismatch:
                logger.warning(
                    "redirect_validation_mismatch",
                    transaction_id=txn.id,
                    field=mismatch,
                    gateway_tran_id=validation.tran_id,
                    gateway_amount=str(validation.amount),
                    gateway_currency=validation.currency,
                )
                reason = f"Gateway validation mismatch ({mismatch})"
            elif kind == "cancel":
                reason = CANCELLED_REASON
            else:
                reason = validation.reason or f"Gateway status {validation.status}"

        result = await self._ledger.settle(
            RedirectSettlement(
                transaction_ref=txn.transaction_number,
                ref_kind="number",
                outcome=outcome,
                reason=reason,
                validation_id=validation.val_id,
                bank_tran_id=validation.bank_tran_id,
                gateway_metadata={
                    "callback": kind,
                    "validation_status": validation.status,
                    "card_type": validation.raw.get("card_type"),
                    "store_amount": validation.raw.get("store_amount"),
                },
            )
        )
        current = result.transaction or txn
        return CallbackResult(
            transaction_number=current.transaction_number,
            status=current.status.value,
            applied=result.applied,
            redirect_url=self._result_page(kind, current),
        )

    # ---- admin ----

    async def validate(self, val_id: str) -> GatewayValidation:
        if not val_id:
            raise ValidationError("val_id is required", field="val_id")
        return await self._gateway.validate(val_id)

    async def query(self, transaction_number: str) -> GatewayValidation:
        return await self._gateway.query_by_transaction(transaction_number)

    async def refund_query(self, refund_ref_id: str) -> dict:
        return await self._gateway.refund_query(refund_ref_id)
