"""
订单API路由 - FastAPI表现层
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_admin, get_current_actor, get_order_service, get_vendor
from application.dtos.orders import (
    ApplyCouponDTO,
    OrderCreateDTO,
    OrderResponseDTO,
    OrderStatisticsDTO,
    ReasonDTO,
    RescheduleDTO,
    VendorNotesDTO,
)
from application.services.order_service import OrderService
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.actor import Actor
from domain.order.entity import CancelledBy, OrderStatus


router = APIRouter(
    prefix="/orders",
    tags=["Orders"]
)


def _page(page: int = Query(1, ge=1), limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1)) -> tuple[int, int]:
    return page, min(limit, settings.MAX_PAGE_SIZE)


@router.post("", summary="Create order", response_model=ApiResponse[OrderResponseDTO], status_code=201)
async def create_order(
    payload: OrderCreateDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    下单

    - 价格、佣金、平台费由服务端按当前服务价格计算
    - 预约时间必须晚于当前时间（UTC）
    """
    order = await service.create(actor, payload)
    return success_response(data=order, message="Order created successfully")


@router.get("/my-orders", summary="List my orders", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def my_orders(
    status: Optional[OrderStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    page, limit = paging
    items, total = await service.list_for_user(actor, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


# ---- vendor ----

@router.get("/vendor/orders", summary="List vendor orders", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def vendor_orders(
    status: Optional[OrderStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    page, limit = paging
    items, total = await service.list_for_vendor(actor, status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.patch("/vendor/{order_id}/accept", summary="Accept order", response_model=ApiResponse[OrderResponseDTO])
async def accept_order(
    order_id: int,
    payload: VendorNotesDTO = VendorNotesDTO(),
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.accept(actor, order_id, payload.notes)
    return success_response(data=order, message="Order accepted")


@router.patch("/vendor/{order_id}/reject", summary="Reject order", response_model=ApiResponse[OrderResponseDTO])
async def reject_order(
    order_id: int,
    payload: ReasonDTO = ReasonDTO(),
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.reject(actor, order_id, payload.reason)
    return success_response(data=order, message="Order rejected")


@router.patch("/vendor/{order_id}/start", summary="Start service", response_model=ApiResponse[OrderResponseDTO])
async def start_order(
    order_id: int,
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.start(actor, order_id)
    return success_response(data=order, message="Service started")


@router.patch("/vendor/{order_id}/complete", summary="Complete service", response_model=ApiResponse[OrderResponseDTO])
async def complete_order(
    order_id: int,
    payload: VendorNotesDTO = VendorNotesDTO(),
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.complete(actor, order_id, payload.notes)
    return success_response(data=order, message="Service completed")


@router.patch("/vendor/{order_id}/cancel", summary="Vendor cancel", response_model=ApiResponse[OrderResponseDTO])
async def vendor_cancel_order(
    order_id: int,
    payload: ReasonDTO = ReasonDTO(),
    actor: Actor = Depends(get_vendor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel(actor, order_id, CancelledBy.VENDOR, payload.reason)
    return success_response(data=order, message="Order cancelled")


# ---- admin ----

@router.get("/admin/all", summary="List all orders", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def all_orders(
    status: Optional[OrderStatus] = Query(None),
    paging: tuple[int, int] = Depends(_page),
    _: Actor = Depends(get_admin),
    service: OrderService = Depends(get_order_service),
):
    page, limit = paging
    items, total = await service.list_all(status=status, page=page, limit=limit)
    return paginated_response(items=items, total=total, page=page, limit=limit)


@router.get("/admin/statistics", summary="Order statistics", response_model=ApiResponse[OrderStatisticsDTO])
async def order_statistics(
    vendor_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    _: Actor = Depends(get_admin),
    service: OrderService = Depends(get_order_service),
):
    stats = await service.statistics(vendor_id=vendor_id, start=start_date, end=end_date)
    return success_response(data=stats)


@router.patch("/admin/{order_id}/cancel", summary="Admin cancel", response_model=ApiResponse[OrderResponseDTO])
async def admin_cancel_order(
    order_id: int,
    payload: ReasonDTO = ReasonDTO(),
    actor: Actor = Depends(get_admin),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel(actor, order_id, CancelledBy.ADMIN, payload.reason)
    return success_response(data=order, message="Order cancelled")


# ---- customer ----

@router.get("/{order_id}", summary="Get order", response_model=ApiResponse[OrderResponseDTO])
async def get_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get(actor, order_id)
    return success_response(data=order)


@router.patch("/{order_id}/cancel", summary="Cancel order", response_model=ApiResponse[OrderResponseDTO])
async def cancel_order(
    order_id: int,
    payload: ReasonDTO = ReasonDTO(),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel(actor, order_id, CancelledBy.USER, payload.reason)
    return success_response(data=order, message="Order cancelled")


@router.patch("/{order_id}/reschedule", summary="Reschedule order", response_model=ApiResponse[OrderResponseDTO])
async def reschedule_order(
    order_id: int,
    payload: RescheduleDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    by = CancelledBy.VENDOR if actor.is_vendor else CancelledBy.USER
    order = await service.reschedule(actor, order_id, payload, by=by)
    return success_response(data=order, message="Order rescheduled")


@router.patch("/{order_id}/apply-coupon", summary="Apply coupon", response_model=ApiResponse[OrderResponseDTO])
async def apply_coupon(
    order_id: int,
    payload: ApplyCouponDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    order = await service.apply_coupon(actor, order_id, payload.code)
    return success_response(data=order, message="Coupon applied")
