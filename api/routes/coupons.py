"""
优惠券API路由
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_coupon_service, get_current_actor
from application.dtos.coupons import CouponValidateDTO, CouponValidationResultDTO
from application.services.coupon_service import CouponService
from core.response import Response as ApiResponse, success_response
from domain.common.actor import Actor


router = APIRouter(
    prefix="/coupons",
    tags=["Coupons"]
)


@router.post("/validate", summary="Validate coupon", response_model=ApiResponse[CouponValidationResultDTO])
async def validate_coupon(
    payload: CouponValidateDTO,
    actor: Actor = Depends(get_current_actor),
    service: CouponService = Depends(get_coupon_service),
):
    """
    预校验优惠券（不占用使用次数）

    校验失败时 valid=false 并给出原因，HTTP 状态仍为 200
    """
    result = await service.validate_code(actor, payload)
    return success_response(data=result)
