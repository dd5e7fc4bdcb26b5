"""
订单应用服务（application/services）- 编排订单状态机、权限校验与通知
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Tuple

from application.dtos.orders import (
    OrderCreateDTO,
    OrderResponseDTO,
    OrderStatisticsDTO,
    RescheduleDTO,
)
from application.ports.notifier import Notifier, NullNotifier
from application.services.access import ensure_can_view, require_vendor
from application.services.config import MarketplaceConfig
from application.services.coupon_service import load_coupon_context
from core.logging_config import get_logger
from domain.common.actor import Actor
from domain.common.clock import utcnow
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)
from domain.common.money import ZERO, to_money
from domain.common.reference import generate_reference
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.coupon import evaluator
from domain.order.entity import (
    Address,
    CancelledBy,
    Order,
    OrderPricing,
    OrderStatus,
    ScheduleSlot,
    ensure_future,
)


logger = get_logger(__name__)


async def publish_safely(notifier: Notifier, events: list, **log_context) -> None:
    """通知失败只记录日志，不影响已提交的业务结果"""
    if not events:
        return
    try:
        await notifier.publish(events)
    except Exception as exc:
        logger.error("notification_publish_failed", error=str(exc), events=len(events), **log_context)


class OrderService:
    """订单应用服务 - 处理应用层逻辑"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: MarketplaceConfig,
        notifier: Optional[Notifier] = None,
    ):
        self._uow_factory = uow_factory
        self._config = config
        self._notifier = notifier or NullNotifier()

    # ---- helpers ----

    async def _load(self, uow: AbstractUnitOfWork, order_id: int) -> Order:
        order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def _ensure_customer(order: Order, actor: Actor) -> None:
        if order.user_id != actor.id:
            raise ForbiddenError("Not authorized to access this order")

    async def _load_for_vendor(self, uow: AbstractUnitOfWork, actor: Actor, order_id: int) -> Order:
        vendor = await require_vendor(uow, actor)
        order = await self._load(uow, order_id)
        if order.vendor_id != vendor.id:
            raise ForbiddenError("Not authorized to manage this order")
        return order

    async def _publish(self, events: list, **context) -> None:
        await publish_safely(self._notifier, events, **context)

    # ---- create ----

    async def create(self, actor: Actor, dto: OrderCreateDTO) -> OrderResponseDTO:
        """下单：校验服务与供应商可用、排期在未来，并生成价格快照"""
        name = dto.customer_name or actor.name
        email = dto.customer_email or actor.email
        phone = dto.customer_phone or actor.phone
        missing = [f for f, v in (("customer_name", name), ("customer_email", email), ("customer_phone", phone)) if not v]
        if missing:
            raise ValidationError(
                "Customer name, email and phone are required",
                field=missing[0],
                details={"missing": missing},
            )

        slot = ScheduleSlot(date=dto.scheduled_date, time=dto.scheduled_time)
        now = utcnow()

        async with self._uow_factory() as uow:
            service = await uow.service_repository.get_by_id(dto.service_id)
            if service is None:
                raise NotFoundError("Service", dto.service_id)
            if not service.bookable:
                raise UnavailableError("Service is not available for booking", details={"service_id": service.id})

            vendor = await uow.vendor_repository.get_by_id(service.vendor_id)
            if vendor is None:
                raise NotFoundError("Vendor", service.vendor_id)
            if not vendor.can_take_orders:
                raise UnavailableError("Vendor is not accepting orders", details={"vendor_id": vendor.id})

            ensure_future(slot, now)

            pricing = OrderPricing.compute(
                service.price,
                service.discount,
                platform_fee_percent=self._config.platform_fee_percent,
                tax_percent=self._config.tax_percent,
            )
            order = Order(
                id=None,
                order_number=generate_reference("ORD", now),
                user_id=actor.id,
                vendor_id=vendor.id,
                service_id=service.id,
                service_name=service.name,
                category_id=service.category_id,
                duration=service.duration,
                pricing=pricing,
                schedule=slot,
                customer_name=name,
                customer_email=str(email),
                customer_phone=phone,
                address=Address(**dto.address.model_dump()),
                notes=dto.notes,
                special_requirements=dto.special_requirements,
                created_at=now,
                updated_at=now,
            )
            created = await uow.order_repository.create(order)
            await uow.vendor_repository.increment_order_count(vendor.id)
            created.placed(vendor_email=vendor.email)
            events = created.pull_events()

        logger.info(
            "order_placed",
            order_id=created.id,
            order_number=created.order_number,
            user_id=actor.id,
            vendor_id=created.vendor_id,
            total_amount=str(created.total_amount),
        )
        await self._publish(events, order_id=created.id)
        return OrderResponseDTO.from_entity(created)

    # ---- queries ----

    async def get(self, actor: Actor, order_id: int) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await self._load(uow, order_id)
            await ensure_can_view(uow, actor, user_id=order.user_id, vendor_id=order.vendor_id)
            return OrderResponseDTO.from_entity(order)

    async def _list(self, *, page: int, limit: int, **filters) -> Tuple[List[OrderResponseDTO], int]:
        skip, limit = self._config.page_window(page, limit)
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list(skip=skip, limit=limit, **filters)
            total = await uow.order_repository.count(**filters)
        return [OrderResponseDTO.from_entity(o) for o in orders], int(total)

    async def list_for_user(
        self, actor: Actor, *, status: Optional[OrderStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[OrderResponseDTO], int]:
        return await self._list(user_id=actor.id, status=status, page=page, limit=limit)

    async def list_for_vendor(
        self, actor: Actor, *, status: Optional[OrderStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[OrderResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            vendor = await require_vendor(uow, actor)
        return await self._list(vendor_id=vendor.id, status=status, page=page, limit=limit)

    async def list_all(
        self, *, status: Optional[OrderStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[OrderResponseDTO], int]:
        return await self._list(status=status, page=page, limit=limit)

    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> OrderStatisticsDTO:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.order_repository.statistics(vendor_id=vendor_id, start=start, end=end)
        by_status = {
            r["status"]: {"count": r["count"], "total_amount": r["total_amount"]} for r in rows
        }
        revenue = by_status.get(OrderStatus.COMPLETED.value, {}).get("total_amount", ZERO)
        return OrderStatisticsDTO(
            total_orders=sum(r["count"] for r in rows),
            total_revenue=to_money(revenue),
            by_status=by_status,
        )

    # ---- vendor transitions ----

    async def _vendor_action(self, actor: Actor, order_id: int, action: str, apply) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            order = await self._load_for_vendor(uow, actor, order_id)
            apply(order)
            await uow.order_repository.save(order)
            events = order.pull_events()

        logger.info(f"order_{action}", order_id=order.id, vendor_id=order.vendor_id, status=order.status.value)
        await self._publish(events, order_id=order.id)
        return OrderResponseDTO.from_entity(order)

    async def accept(self, actor: Actor, order_id: int, notes: Optional[str] = None) -> OrderResponseDTO:
        return await self._vendor_action(actor, order_id, "accepted", lambda o: o.accept(notes))

    async def reject(self, actor: Actor, order_id: int, reason: Optional[str]) -> OrderResponseDTO:
        return await self._vendor_action(actor, order_id, "rejected", lambda o: o.reject(reason or ""))

    async def start(self, actor: Actor, order_id: int) -> OrderResponseDTO:
        return await self._vendor_action(actor, order_id, "started", lambda o: o.start())

    async def complete(self, actor: Actor, order_id: int, notes: Optional[str] = None) -> OrderResponseDTO:
        return await self._vendor_action(actor, order_id, "completed", lambda o: o.complete(notes))

    # ---- cancel / reschedule ----

    async def cancel(
        self, actor: Actor, order_id: int, by: CancelledBy, reason: Optional[str] = None
    ) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            if by == CancelledBy.VENDOR:
                order = await self._load_for_vendor(uow, actor, order_id)
            else:
                order = await self._load(uow, order_id)
                if by == CancelledBy.USER:
                    self._ensure_customer(order, actor)
                elif not actor.is_admin:
                    raise ForbiddenError("Admin privileges required")
            order.cancel(by, reason)
            await uow.order_repository.save(order)
            events = order.pull_events()

        logger.info("order_cancelled", order_id=order.id, cancelled_by=by.value, reason=order.cancellation_reason)
        await self._publish(events, order_id=order.id)
        return OrderResponseDTO.from_entity(order)

    async def reschedule(
        self, actor: Actor, order_id: int, dto: RescheduleDTO, by: CancelledBy = CancelledBy.USER
    ) -> OrderResponseDTO:
        slot = ScheduleSlot(date=dto.new_date, time=dto.new_time)
        async with self._uow_factory() as uow:
            if by == CancelledBy.VENDOR:
                order = await self._load_for_vendor(uow, actor, order_id)
            else:
                order = await self._load(uow, order_id)
                self._ensure_customer(order, actor)
            order.reschedule(by, slot, dto.reason)
            await uow.order_repository.save(order)
            events = order.pull_events()

        logger.info(
            "order_rescheduled",
            order_id=order.id,
            rescheduled_by=by.value,
            new_date=slot.date.isoformat(),
            new_time=slot.time,
        )
        await self._publish(events, order_id=order.id)
        return OrderResponseDTO.from_entity(order)

    # ---- coupon ----

    async def apply_coupon(self, actor: Actor, order_id: int, code: str) -> OrderResponseDTO:
        async with self._uow_factory() as uow:
            order = await self._load(uow, order_id)
            self._ensure_customer(order, actor)
            order.ensure_coupon_allowed()

            coupon, ctx = await load_coupon_context(
                uow,
                user_id=actor.id,
                code=code,
                order_amount=order.pricing.subtotal,
                service_id=order.service_id,
                category_id=order.category_id,
                vendor_id=order.vendor_id,
            )
            result = evaluator.evaluate(coupon, ctx)
            if not result.applicable:
                raise ValidationError(
                    result.message or "Coupon cannot be applied",
                    field="code",
                    details={"reason": result.reason},
                )
            if not await uow.coupon_repository.try_increment_usage(coupon.id):
                raise ConflictError("Coupon usage limit reached", details={"code": coupon.code})

            order.apply_coupon(coupon.id, coupon.code, result.amount)
            await uow.order_repository.save(order)
            events = order.pull_events()

        logger.info(
            "coupon_applied",
            order_id=order.id,
            code=coupon.code,
            discount=str(order.pricing.coupon_discount),
            total_amount=str(order.total_amount),
        )
        await self._publish(events, order_id=order.id)
        return OrderResponseDTO.from_entity(order)
