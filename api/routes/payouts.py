"""
结算API路由 - FastAPI表现层
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_admin, get_current_actor, get_payout_service, get_vendor
from application.dtos.payouts import (
    BalanceDTO,
    PayoutCompleteDTO,
    PayoutProcessDTO,
    PayoutRequestDTO,
    PayoutResponseDTO,
)
from application.services.payout_service import PayoutService
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.actor import Actor
from domain.payout.entity import PayoutStatus


router = APIRouter(
    prefix="/payouts",
    tags=["Payouts"]
)


def _page(page: int = Query(1, ge=1), limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1)) -> tuple[int, int]:
    return page, min(limit, settings.MAX_PAGE_SIZE)


@router.post("/request", summary="Request payout", response_model=ApiResponse[PayoutResponseDTO], status_code=201)
async def request_payout(
    payload: PayoutRequestDTO,
    actor: Actor = Depends(get_vendor),
    service: PayoutService = Depends(get_payout_service),
):
    """
    供应商申请结算

    汇总统计周期内已完成、未结算的交易；没有可结算交易时返回 400
    """
    payout = await service.request(actor, payload)
    return success_response(data=payout, message="Payout requested")


@router.get("/my-payouts", summary="List my payouts", response_model=ApiResponse[PaginatedData[PayoutResponseDTO]])
async def my_payouts(
    status: Optional[PayoutStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    actor: Actor = Depends(get_vendor),
    service: PayoutService = Depends(get_payout_service),
):
    page, limit = paging
    items, total = await service.list_for_vendor(actor, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get("/balance", summary="Available balance", response_model=ApiResponse[BalanceDTO])
async def available_balance(
    actor: Actor = Depends(get_vendor),
    service: PayoutService = Depends(get_payout_service),
):
    return success_response(data=await service.available_balance(actor))


@router.get("/admin/all", summary="List all payouts", response_model=ApiResponse[PaginatedData[PayoutResponseDTO]])
async def all_payouts(
    vendor_id: Optional[int] = Query(None),
    status: Optional[PayoutStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    _: Actor = Depends(get_admin),
    service: PayoutService = Depends(get_payout_service),
):
    page, limit = paging
    items, total = await service.list_all(vendor_id=vendor_id, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get("/admin/statistics", summary="Payout statistics")
async def payout_statistics(
    vendor_id: Optional[int] = Query(None),
    _: Actor = Depends(get_admin),
    service: PayoutService = Depends(get_payout_service),
):
    return success_response(data=await service.statistics(vendor_id=vendor_id))


@router.get("/{payout_id}", summary="Get payout", response_model=ApiResponse[PayoutResponseDTO])
async def get_payout(
    payout_id: int,
    actor: Actor = Depends(get_current_actor),
    service: PayoutService = Depends(get_payout_service),
):
    return success_response(data=await service.get(actor, payout_id))


@router.patch("/{payout_id}/process", summary="Approve or reject payout", response_model=ApiResponse[PayoutResponseDTO])
async def process_payout(
    payout_id: int,
    payload: PayoutProcessDTO,
    actor: Actor = Depends(get_admin),
    service: PayoutService = Depends(get_payout_service),
):
    payout = await service.process(actor, payout_id, payload)
    message = "Payout approved" if payload.action == "approve" else "Payout rejected"
    return success_response(data=payout, message=message)


@router.patch("/{payout_id}/complete", summary="Mark payout completed", response_model=ApiResponse[PayoutResponseDTO])
async def complete_payout(
    payout_id: int,
    payload: PayoutCompleteDTO,
    actor: Actor = Depends(get_admin),
    service: PayoutService = Depends(get_payout_service),
):
    payout = await service.complete(actor, payout_id, payload)
    return success_response(data=payout, message="Payout completed")
