"""
优惠券仓储实现
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from domain.coupon.entity import Coupon, CouponScope, CouponStatus, CouponType, normalize_code
from domain.coupon.repository import CouponRepository
from infrastructure.models.coupon import CouponModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyCouponRepository(CouponRepository):
    """优惠券仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CouponModel) -> Coupon:
        return Coupon(
            id=model.id,
            code=model.code,
            name=model.name,
            description=model.description,
            type=CouponType(model.type),
            value=Decimal(str(model.value)),
            min_order_amount=Decimal(str(model.min_order_amount or 0)),
            max_discount_amount=(
                Decimal(str(model.max_discount_amount)) if model.max_discount_amount is not None else None
            ),
            status=CouponStatus(model.status),
            start_date=model.start_date,
            end_date=model.end_date,
            usage_limit=model.usage_limit,
            usage_count=model.usage_count,
            user_usage_limit=model.user_usage_limit,
            applicable_for=CouponScope(model.applicable_for),
            applicable_users=list(model.applicable_users or []),
            applicable_categories=list(model.applicable_categories or []),
            applicable_services=list(model.applicable_services or []),
            applicable_vendors=list(model.applicable_vendors or []),
            is_first_order_only=bool(model.is_first_order_only),
        )

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.code == normalize_code(code))
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_id(self, coupon_id: int) -> Optional[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.id == coupon_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def try_increment_usage(self, coupon_id: int) -> bool:
        result = await self.session.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.usage_limit == 0, CouponModel.usage_count < CouponModel.usage_limit),
            )
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("coupon_usage_limit_reached", coupon_id=coupon_id)
            return False
        # 用尽后标记 used_up
        await self.session.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                and_(CouponModel.usage_limit > 0, CouponModel.usage_count >= CouponModel.usage_limit),
            )
            .values(status=CouponStatus.USED_UP.value)
            .execution_options(synchronize_session=False)
        )
        return True

    async def create(self, coupon: Coupon) -> Coupon:
        model = CouponModel(
            code=coupon.code,
            name=coupon.name,
            description=coupon.description,
            type=coupon.type.value,
            value=coupon.value,
            min_order_amount=coupon.min_order_amount,
            max_discount_amount=coupon.max_discount_amount,
            status=coupon.status.value,
            start_date=coupon.start_date,
            end_date=coupon.end_date,
            usage_limit=coupon.usage_limit,
            usage_count=coupon.usage_count,
            user_usage_limit=coupon.user_usage_limit,
            applicable_for=coupon.applicable_for.value,
            applicable_users=coupon.applicable_users,
            applicable_categories=coupon.applicable_categories,
            applicable_services=coupon.applicable_services,
            applicable_vendors=coupon.applicable_vendors,
            is_first_order_only=coupon.is_first_order_only,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("coupon_created", coupon_id=model.id, code=model.code)
        return self._to_entity(model)
