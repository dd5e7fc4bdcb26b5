"""
Payments API routes.

Thin HTTP layer over the transaction ledger and the per-method payment
services. Provider SDK details stay in infrastructure adapters.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from api.dependencies import (
    get_admin,
    get_card_payment_service,
    get_current_actor,
    get_ledger,
    get_manual_payment_service,
    get_redirect_payment_service,
    get_vendor,
)
from api.utils.network import ip_allowed
from application.dtos.payments import (
    CallbackResult,
    CardIntentResult,
    CreateIntentRequest,
    GatewayValidation,
    ManualPaymentRequest,
    ProofUploadRequest,
    RedirectInitRequest,
    RedirectInitResult,
    RefundRequest,
    TransactionResponseDTO,
    ValidateRequest,
    VerificationStatsDTO,
    VerifyPaymentRequest,
)
from application.services.card_payment_service import CardPaymentService
from application.services.ledger_service import TransactionLedger
from application.services.manual_payment_service import ManualPaymentService
from application.services.redirect_payment_service import BROWSER_KINDS, RedirectPaymentService
from core.config import settings
from core.logging_config import get_logger
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from core.settings import payment_settings
from domain.common.actor import Actor
from domain.common.clock import utcnow
from domain.common.exceptions import ForbiddenError, ValidationError
from domain.payment.entity import PaymentMethod, TransactionStatus


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _page(page: int = Query(1, ge=1), limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1)) -> tuple[int, int]:
    return page, min(limit, settings.MAX_PAGE_SIZE)


# ---- card (Stripe) ----

@router.post("/create-intent", summary="Create card payment intent", response_model=ApiResponse[CardIntentResult])
async def create_intent(
    payload: CreateIntentRequest,
    actor: Actor = Depends(get_current_actor),
    service: CardPaymentService = Depends(get_card_payment_service),
):
    result = await service.create_intent(actor, payload.order_id)
    return success_response(data=result, message="Payment intent created")


@router.post("/webhook/stripe", summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    service: CardPaymentService = Depends(get_card_payment_service),
):
    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        raise ValidationError("Unsupported content type, expected application/json", field="content-type")

    remote_ip = request.client.host if request.client else None
    if not ip_allowed(remote_ip, payment_settings.webhook.ip_allowlist or []):
        logger.warning("payment_webhook_ip_rejected", provider="stripe", remote_ip=remote_ip)
        raise ForbiddenError("Webhook source address not allowed")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    result = await service.handle_webhook(headers, raw_body)
    return success_response(data=result)


# ---- manual (cash / bank transfer) ----

@router.post("/confirm", summary="Submit manual payment", response_model=ApiResponse[TransactionResponseDTO])
async def confirm_manual_payment(
    payload: ManualPaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: ManualPaymentService = Depends(get_manual_payment_service),
):
    txn = await service.submit(actor, payload)
    return success_response(data=txn, message="Payment submitted for verification")


# ---- listings ----

@router.get(
    "/my-transactions",
    summary="List my transactions",
    response_model=ApiResponse[PaginatedData[TransactionResponseDTO]],
)
async def my_transactions(
    status: Optional[TransactionStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    actor: Actor = Depends(get_current_actor),
    ledger: TransactionLedger = Depends(get_ledger),
):
    page, limit = paging
    items, total = await ledger.list_for_user(actor, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get(
    "/vendor/transactions",
    summary="List vendor transactions",
    response_model=ApiResponse[PaginatedData[TransactionResponseDTO]],
)
async def vendor_transactions(
    status: Optional[TransactionStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    actor: Actor = Depends(get_vendor),
    ledger: TransactionLedger = Depends(get_ledger),
):
    page, limit = paging
    items, total = await ledger.list_for_vendor(actor, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


# ---- admin ----

@router.get(
    "/admin/transactions",
    summary="List all transactions",
    response_model=ApiResponse[PaginatedData[TransactionResponseDTO]],
)
async def admin_transactions(
    status: Optional[TransactionStatus] = Query(None),
    payment_method: Optional[PaymentMethod] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    _: Actor = Depends(get_admin),
    ledger: TransactionLedger = Depends(get_ledger),
):
    page, limit = paging
    items, total = await ledger.list_all(status=status, method=payment_method, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get("/admin/revenue", summary="Revenue statistics")
async def admin_revenue(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    vendor_id: Optional[int] = Query(None),
    _: Actor = Depends(get_admin),
    ledger: TransactionLedger = Depends(get_ledger),
):
    end = end_date or utcnow()
    start = start_date or end - timedelta(days=30)
    summary = await ledger.statistics(vendor_id=vendor_id, start=start, end=end)
    daily = await ledger.revenue_by_day(start=start, end=end, vendor_id=vendor_id)
    return success_response(data={"summary": summary, "daily": daily})


@router.get(
    "/admin/pending-verifications",
    summary="Manual payments awaiting verification",
    response_model=ApiResponse[PaginatedData[TransactionResponseDTO]],
)
async def pending_verifications(
    paging: tuple[int, int] = Depends(_page),
    _: Actor = Depends(get_admin),
    service: ManualPaymentService = Depends(get_manual_payment_service),
):
    page, limit = paging
    items, total = await service.pending_verifications(page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get(
    "/admin/verification-stats",
    summary="Manual payment verification statistics",
    response_model=ApiResponse[VerificationStatsDTO],
)
async def verification_stats(
    _: Actor = Depends(get_admin),
    service: ManualPaymentService = Depends(get_manual_payment_service),
):
    return success_response(data=await service.verification_stats())


@router.post(
    "/admin/{transaction_id}/verify",
    summary="Verify manual payment",
    response_model=ApiResponse[TransactionResponseDTO],
)
async def verify_manual_payment(
    transaction_id: int,
    payload: VerifyPaymentRequest,
    actor: Actor = Depends(get_admin),
    service: ManualPaymentService = Depends(get_manual_payment_service),
):
    txn = await service.verify(actor, transaction_id, payload)
    message = "Payment verified" if payload.action == "approve" else "Payment rejected"
    return success_response(data=txn, message=message)


@router.post(
    "/admin/{transaction_id}/refund",
    summary="Refund transaction",
    response_model=ApiResponse[TransactionResponseDTO],
)
async def refund_transaction(
    transaction_id: int,
    payload: RefundRequest,
    actor: Actor = Depends(get_admin),
    ledger: TransactionLedger = Depends(get_ledger),
):
    txn = await ledger.refund(actor, transaction_id, payload.amount, payload.reason)
    return success_response(data=txn, message="Refund processed")


@router.post("/admin/{transaction_id}/reconcile", summary="Re-run vendor credit for a settled transaction")
async def reconcile_transaction(
    transaction_id: int,
    _: Actor = Depends(get_admin),
    ledger: TransactionLedger = Depends(get_ledger),
):
    return success_response(data=await ledger.reconcile(transaction_id))


# ---- redirect checkout (SSLCommerz) ----

@router.post("/sslcommerz/init", summary="Start hosted checkout", response_model=ApiResponse[RedirectInitResult])
async def sslcommerz_init(
    payload: RedirectInitRequest,
    actor: Actor = Depends(get_current_actor),
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    result = await service.init(actor, payload.order_id)
    return success_response(data=result, message="Payment session created")


async def _callback(kind: str, request: Request, service: RedirectPaymentService):
    form = dict(await request.form())
    result: CallbackResult = await service.handle_callback(kind, form)
    if kind in BROWSER_KINDS and result.redirect_url:
        return RedirectResponse(url=result.redirect_url, status_code=303)
    return success_response(data=result)


@router.post("/sslcommerz/success", summary="Hosted checkout success return")
async def sslcommerz_success(
    request: Request,
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return await _callback("success", request, service)


@router.post("/sslcommerz/fail", summary="Hosted checkout failure return")
async def sslcommerz_fail(
    request: Request,
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return await _callback("fail", request, service)


@router.post("/sslcommerz/cancel", summary="Hosted checkout cancel return")
async def sslcommerz_cancel(
    request: Request,
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return await _callback("cancel", request, service)


@router.post("/sslcommerz/ipn", summary="Hosted checkout IPN")
async def sslcommerz_ipn(
    request: Request,
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return await _callback("ipn", request, service)


@router.post("/sslcommerz/validate", summary="Validate a gateway payment", response_model=ApiResponse[GatewayValidation])
async def sslcommerz_validate(
    payload: ValidateRequest,
    _: Actor = Depends(get_admin),
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return success_response(data=await service.validate(payload.val_id))


@router.get(
    "/sslcommerz/query/{transaction_number}",
    summary="Query gateway by transaction number",
    response_model=ApiResponse[GatewayValidation],
)
async def sslcommerz_query(
    transaction_number: str,
    _: Actor = Depends(get_admin),
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return success_response(data=await service.query(transaction_number))


@router.get("/sslcommerz/refund-query/{refund_ref_id}", summary="Query gateway refund status")
async def sslcommerz_refund_query(
    refund_ref_id: str,
    _: Actor = Depends(get_admin),
    service: RedirectPaymentService = Depends(get_redirect_payment_service),
):
    return success_response(data=await service.refund_query(refund_ref_id))


# ---- per transaction ----

@router.post(
    "/{transaction_id}/upload-proof",
    summary="Attach payment proof",
    response_model=ApiResponse[TransactionResponseDTO],
)
async def upload_proof(
    transaction_id: int,
    payload: ProofUploadRequest,
    actor: Actor = Depends(get_current_actor),
    service: ManualPaymentService = Depends(get_manual_payment_service),
):
    txn = await service.upload_proof(actor, transaction_id, payload)
    return success_response(data=txn, message="Payment proof uploaded")


@router.get("/{transaction_id}", summary="Get transaction", response_model=ApiResponse[TransactionResponseDTO])
async def get_transaction(
    transaction_id: int,
    actor: Actor = Depends(get_current_actor),
    ledger: TransactionLedger = Depends(get_ledger),
):
    return success_response(data=await ledger.get(actor, transaction_id))
