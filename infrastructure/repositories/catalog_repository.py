"""
供应商/服务仓储实现（只读 + 收入原子累加）
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.catalog.entity import Service, Vendor, VendorApprovalStatus
from domain.catalog.repository import ServiceRepository, VendorRepository
from infrastructure.models.catalog import ServiceModel, VendorModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyVendorRepository(VendorRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: VendorModel) -> Vendor:
        return Vendor(
            id=model.id,
            user_id=model.user_id,
            company_name=model.company_name,
            email=model.email,
            approval_status=VendorApprovalStatus(model.approval_status),
            is_active=bool(model.is_active),
            total_revenue=Decimal(str(model.total_revenue or 0)),
            commission=Decimal(str(model.commission or 0)),
            total_orders=model.total_orders or 0,
        )

    async def _one(self, *criteria) -> Optional[Vendor]:
        result = await self.session.execute(
            select(VendorModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_id(self, vendor_id: int) -> Optional[Vendor]:
        return await self._one(VendorModel.id == vendor_id)

    async def get_by_user_id(self, user_id: int) -> Optional[Vendor]:
        return await self._one(VendorModel.user_id == user_id)

    async def credit_earnings(self, vendor_id: int, revenue: Decimal, commission: Decimal) -> None:
        await self.session.execute(
            update(VendorModel)
            .where(VendorModel.id == vendor_id)
            .values(
                total_revenue=VendorModel.total_revenue + revenue,
                commission=VendorModel.commission + commission,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info("vendor_earnings_credited", vendor_id=vendor_id, revenue=str(revenue), commission=str(commission))

    async def increment_order_count(self, vendor_id: int) -> None:
        await self.session.execute(
            update(VendorModel)
            .where(VendorModel.id == vendor_id)
            .values(total_orders=VendorModel.total_orders + 1)
            .execution_options(synchronize_session=False)
        )


class SQLAlchemyServiceRepository(ServiceRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, service_id: int) -> Optional[Service]:
        result = await self.session.execute(select(ServiceModel).where(ServiceModel.id == service_id))
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return Service(
            id=model.id,
            vendor_id=model.vendor_id,
            name=model.name,
            price=Decimal(str(model.price)),
            category_id=model.category_id,
            discount=Decimal(str(model.discount or 0)),
            duration=model.duration or 60,
            is_active=bool(model.is_active),
            is_available=bool(model.is_available),
        )
