"""
优惠券应用服务 - 预校验与下单时共享的上下文构建
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.coupons import CouponValidateDTO, CouponValidationResultDTO
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.exceptions import NotFoundError
from domain.common.money import to_money
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.coupon import evaluator
from domain.coupon.entity import Coupon, normalize_code
from domain.order.entity import OrderStatus


logger = get_logger(__name__)


async def load_coupon_context(
    uow: AbstractUnitOfWork,
    *,
    user_id: int,
    code: str,
    order_amount: Decimal,
    service_id: Optional[int] = None,
    category_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
) -> tuple[Coupon, evaluator.CouponContext]:
    """读取优惠券与用户历史，组装评估上下文"""
    coupon = await uow.coupon_repository.get_by_code(code)
    if coupon is None:
        raise NotFoundError("Coupon", normalize_code(code))
    usage = await uow.order_repository.count_coupon_usage(user_id, coupon.code)
    completed = await uow.order_repository.count(user_id=user_id, status=OrderStatus.COMPLETED)
    ctx = evaluator.CouponContext(
        user_id=user_id,
        order_amount=to_money(order_amount),
        service_id=service_id,
        category_id=category_id,
        vendor_id=vendor_id,
        user_usage_count=usage,
        user_order_count=completed,
    )
    return coupon, ctx


class CouponService:
    """只读预校验；真正的用量计数发生在订单应用优惠券时"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def validate_code(self, actor: Actor, dto: CouponValidateDTO) -> CouponValidationResultDTO:
        async with self._uow_factory(readonly=True) as uow:
            coupon, ctx = await load_coupon_context(
                uow,
                user_id=actor.id,
                code=dto.code,
                order_amount=dto.order_amount,
                service_id=dto.service_id,
                category_id=dto.category_id,
                vendor_id=dto.vendor_id,
            )

        result = evaluator.evaluate(coupon, ctx)
        logger.info(
            "coupon_validated",
            user_id=actor.id,
            code=coupon.code,
            applicable=result.applicable,
            reason=result.reason,
        )
        if not result.applicable:
            return CouponValidationResultDTO(
                valid=False,
                code=coupon.code,
                reason=result.reason,
                message=result.message,
            )
        return CouponValidationResultDTO(
            valid=True,
            code=coupon.code,
            discount_amount=result.amount,
            final_amount=ctx.order_amount - result.amount,
        )
