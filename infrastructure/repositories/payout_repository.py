"""
结算仓储实现
"""
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payout.entity import Payout, PayoutMethod, PayoutStatus
from domain.payout.repository import PayoutRepository
from infrastructure.models.payout import PayoutModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(Decimal("0.01"))


class SQLAlchemyPayoutRepository(PayoutRepository):
    """结算仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PayoutModel) -> Payout:
        return Payout(
            id=model.id,
            payout_number=model.payout_number,
            vendor_id=model.vendor_id,
            amount=_money(model.amount),
            currency=model.currency,
            payment_method=PayoutMethod(model.payment_method),
            period_start=model.period_start,
            period_end=model.period_end,
            status=PayoutStatus(model.status),
            transaction_ids=list(model.transaction_ids or []),
            bank_details=model.bank_details,
            mobile_banking_details=model.mobile_banking_details,
            notes=model.notes,
            failure_reason=model.failure_reason,
            gateway_transaction_id=model.gateway_transaction_id,
            gateway_response=model.gateway_response,
            processed_at=model.processed_at,
            processed_by=model.processed_by,
            completed_at=model.completed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _mutable_values(payout: Payout) -> dict:
        return {
            "amount": payout.amount,
            "status": payout.status.value,
            "transaction_ids": list(payout.transaction_ids),
            "notes": payout.notes,
            "failure_reason": payout.failure_reason,
            "gateway_transaction_id": payout.gateway_transaction_id,
            "gateway_response": payout.gateway_response,
            "processed_at": payout.processed_at,
            "processed_by": payout.processed_by,
            "completed_at": payout.completed_at,
        }

    async def create(self, payout: Payout) -> Payout:
        model = PayoutModel(
            payout_number=payout.payout_number,
            vendor_id=payout.vendor_id,
            currency=payout.currency,
            payment_method=payout.payment_method.value,
            bank_details=payout.bank_details,
            mobile_banking_details=payout.mobile_banking_details,
            period_start=payout.period_start,
            period_end=payout.period_end,
            created_at=payout.created_at,
            updated_at=payout.updated_at,
            **self._mutable_values(payout),
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("payout_created", payout_id=model.id, payout_number=model.payout_number, vendor_id=model.vendor_id)
        return self._to_entity(model)

    async def get_by_id(self, payout_id: int) -> Optional[Payout]:
        result = await self.session.execute(
            select(PayoutModel)
            .where(PayoutModel.id == payout_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, payout: Payout, *, expected_status: PayoutStatus) -> bool:
        result = await self.session.execute(
            update(PayoutModel)
            .where(PayoutModel.id == payout.id, PayoutModel.status == expected_status.value)
            .values(**self._mutable_values(payout))
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            logger.info("payout_updated", payout_id=payout.id, status=payout.status.value)
        else:
            logger.warning("payout_update_conflict", payout_id=payout.id, expected_status=expected_status.value)
        return applied

    def _filtered(self, query, vendor_id, status):
        if vendor_id is not None:
            query = query.where(PayoutModel.vendor_id == vendor_id)
        if status is not None:
            query = query.where(PayoutModel.status == status.value)
        return query

    async def list(
        self,
        *,
        vendor_id: Optional[int] = None,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Payout]:
        query = self._filtered(select(PayoutModel), vendor_id, status)
        query = query.order_by(PayoutModel.created_at.desc(), PayoutModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(self, *, vendor_id: Optional[int] = None, status: Optional[PayoutStatus] = None) -> int:
        result = await self.session.execute(self._filtered(select(func.count(PayoutModel.id)), vendor_id, status))
        return result.scalar_one()

    async def statistics(self, *, vendor_id: Optional[int] = None) -> List[dict]:
        query = select(
            PayoutModel.status,
            func.count(PayoutModel.id),
            func.coalesce(func.sum(PayoutModel.amount), 0),
        )
        if vendor_id is not None:
            query = query.where(PayoutModel.vendor_id == vendor_id)
        result = await self.session.execute(query.group_by(PayoutModel.status))
        return [
            {"status": status, "count": count, "amount": _money(amount)}
            for status, count, amount in result.all()
        ]
