"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import ConflictError, NotFoundError
from domain.order.entity import (
    Address,
    AppliedCoupon,
    CancelledBy,
    Order,
    OrderPaymentStatus,
    OrderPricing,
    OrderStatus,
    ScheduleSlot,
)
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(Decimal("0.01"))


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        coupon = None
        if model.coupon_code:
            coupon = AppliedCoupon(
                code=model.coupon_code,
                coupon_id=model.coupon_id,
                discount_amount=_money(model.coupon_discount),
            )
        rescheduled_from = None
        if model.rescheduled_from_date is not None:
            rescheduled_from = ScheduleSlot(date=model.rescheduled_from_date, time=model.rescheduled_from_time)
        return Order(
            id=model.id,
            order_number=model.order_number,
            user_id=model.user_id,
            vendor_id=model.vendor_id,
            service_id=model.service_id,
            service_name=model.service_name,
            category_id=model.category_id,
            duration=model.duration,
            pricing=OrderPricing(
                service_price=_money(model.service_price),
                discount=Decimal(str(model.discount or 0)),
                discount_amount=_money(model.discount_amount),
                subtotal=_money(model.subtotal),
                tax=_money(model.tax),
                platform_fee=_money(model.platform_fee),
                total_amount=_money(model.total_amount),
                coupon_discount=_money(model.coupon_discount),
            ),
            schedule=ScheduleSlot(date=model.scheduled_date, time=model.scheduled_time),
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            address=Address(**(model.address or {})),
            status=OrderStatus(model.status),
            payment_status=OrderPaymentStatus(model.payment_status),
            coupon=coupon,
            notes=model.notes,
            special_requirements=model.special_requirements,
            vendor_notes=model.vendor_notes,
            rejection_reason=model.rejection_reason,
            cancelled_by=CancelledBy(model.cancelled_by) if model.cancelled_by else None,
            cancellation_reason=model.cancellation_reason,
            rescheduled_from=rescheduled_from,
            rescheduled_at=model.rescheduled_at,
            rescheduled_by=CancelledBy(model.rescheduled_by) if model.rescheduled_by else None,
            accepted_at=model.accepted_at,
            rejected_at=model.rejected_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            version=model.version,
        )

    @staticmethod
    def _mutable_values(order: Order) -> dict:
        """可写回的列（下单后不变的快照列与 payment_status 除外）"""
        pricing = order.pricing
        previous = order.rescheduled_from
        return {
            "status": order.status.value,
            "scheduled_date": order.schedule.date,
            "scheduled_time": order.schedule.time,
            "rescheduled_from_date": previous.date if previous else None,
            "rescheduled_from_time": previous.time if previous else None,
            "rescheduled_at": order.rescheduled_at,
            "rescheduled_by": order.rescheduled_by.value if order.rescheduled_by else None,
            "coupon_code": order.coupon.code if order.coupon else None,
            "coupon_id": order.coupon.coupon_id if order.coupon else None,
            "coupon_discount": pricing.coupon_discount,
            "total_amount": pricing.total_amount,
            "notes": order.notes,
            "vendor_notes": order.vendor_notes,
            "rejection_reason": order.rejection_reason,
            "cancelled_by": order.cancelled_by.value if order.cancelled_by else None,
            "cancellation_reason": order.cancellation_reason,
            "accepted_at": order.accepted_at,
            "rejected_at": order.rejected_at,
            "started_at": order.started_at,
            "completed_at": order.completed_at,
            "cancelled_at": order.cancelled_at,
        }

    def _to_model(self, order: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        pricing = order.pricing
        return OrderModel(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            vendor_id=order.vendor_id,
            service_id=order.service_id,
            service_name=order.service_name,
            category_id=order.category_id,
            duration=order.duration,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            address=asdict(order.address),
            service_price=pricing.service_price,
            discount=pricing.discount,
            discount_amount=pricing.discount_amount,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            platform_fee=pricing.platform_fee,
            payment_status=order.payment_status.value,
            special_requirements=order.special_requirements,
            created_at=order.created_at,
            updated_at=order.updated_at,
            version=order.version,
            **self._mutable_values(order),
        )

    async def create(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info(
            "order_created",
            order_id=db_order.id,
            order_number=db_order.order_number,
            vendor_id=db_order.vendor_id,
        )
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def save(self, order: Order) -> Order:
        if order.id is None:
            raise NotFoundError("Order")
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == order.version)
            .values(**self._mutable_values(order), version=order.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("order_save_conflict", order_id=order.id, version=order.version)
            raise ConflictError(
                "Order was modified concurrently, please retry",
                details={"order_id": order.id},
            )
        order.version += 1
        logger.info("order_updated", order_id=order.id, status=order.status.value, version=order.version)
        return order

    async def set_payment_status(
        self,
        order_id: int,
        status: OrderPaymentStatus,
        *,
        unless: Optional[OrderPaymentStatus] = None,
    ) -> bool:
        stmt = update(OrderModel).where(OrderModel.id == order_id)
        if unless is not None:
            stmt = stmt.where(OrderModel.payment_status != unless.value)
        result = await self.session.execute(
            stmt.values(payment_status=status.value)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            logger.info("order_payment_status_updated", order_id=order_id, payment_status=status.value)
        return changed

    def _filtered(self, query, user_id, vendor_id, status):
        if user_id is not None:
            query = query.where(OrderModel.user_id == user_id)
        if vendor_id is not None:
            query = query.where(OrderModel.vendor_id == vendor_id)
        if status is not None:
            query = query.where(OrderModel.status == status.value)
        return query

    async def list(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        query = self._filtered(select(OrderModel), user_id, vendor_id, status)
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        query = self._filtered(select(func.count(OrderModel.id)), user_id, vendor_id, status)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_coupon_usage(self, user_id: int, code: str) -> int:
        result = await self.session.execute(
            select(func.count(OrderModel.id)).where(
                OrderModel.user_id == user_id,
                OrderModel.coupon_code == code,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
        )
        return result.scalar_one()

    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[dict]:
        query = select(
            OrderModel.status,
            func.count(OrderModel.id),
            func.coalesce(func.sum(OrderModel.total_amount), 0),
        )
        if vendor_id is not None:
            query = query.where(OrderModel.vendor_id == vendor_id)
        if start is not None:
            query = query.where(OrderModel.created_at >= start)
        if end is not None:
            query = query.where(OrderModel.created_at <= end)
        result = await self.session.execute(query.group_by(OrderModel.status))
        return [
            {"status": status, "count": count, "total_amount": _money(total)}
            for status, count, total in result.all()
        ]
