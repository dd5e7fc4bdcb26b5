"""
交易仓储实现 - 使用SQLAlchemy实现数据访问

竞态敏感的字段一律通过 UPDATE ... WHERE 条件更新，依据 rowcount 判断是否生效。
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment.entity import (
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from domain.payment.repository import TransactionRepository
from infrastructure.models.payment import TransactionModel
from core.logging_config import get_logger


logger = get_logger(__name__)

# 实体字段名 -> 模型属性名
_FIELD_ALIASES = {"metadata": "extra_metadata"}


def _money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(Decimal("0.01"))


def _column_values(values: dict) -> dict:
    """把领域字段映射成可直接用于 UPDATE 的列值"""
    converted = {}
    for key, value in values.items():
        attr = getattr(TransactionModel, _FIELD_ALIASES.get(key, key))
        converted[attr] = value.value if isinstance(value, Enum) else value
    return converted


class SQLAlchemyTransactionRepository(TransactionRepository):
    """交易仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransactionModel) -> Transaction:
        """将数据库模型转换为领域实体"""
        return Transaction(
            id=model.id,
            transaction_number=model.transaction_number,
            type=TransactionType(model.type),
            order_id=model.order_id,
            user_id=model.user_id,
            vendor_id=model.vendor_id,
            amount=_money(model.amount),
            currency=model.currency,
            payment_method=PaymentMethod(model.payment_method),
            commission_rate=Decimal(str(model.commission_rate)),
            commission_amount=_money(model.commission_amount),
            vendor_amount=_money(model.vendor_amount),
            status=TransactionStatus(model.status),
            stripe_payment_intent_id=model.stripe_payment_intent_id,
            stripe_charge_id=model.stripe_charge_id,
            sslcommerz_transaction_id=model.sslcommerz_transaction_id,
            sslcommerz_session_key=model.sslcommerz_session_key,
            sslcommerz_validation_id=model.sslcommerz_validation_id,
            sslcommerz_bank_tran_id=model.sslcommerz_bank_tran_id,
            gateway_response=model.gateway_response or {},
            metadata=model.extra_metadata or {},
            failure_reason=model.failure_reason,
            refund_amount=_money(model.refund_amount),
            refund_reason=model.refund_reason,
            refund_id=model.refund_id,
            refunded_at=model.refunded_at,
            refunded_by=model.refunded_by,
            payout_id=model.payout_id,
            earnings_credited=bool(model.earnings_credited),
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Transaction) -> TransactionModel:
        """将领域实体转换为数据库模型"""
        return TransactionModel(
            id=entity.id,
            transaction_number=entity.transaction_number,
            type=entity.type.value,
            order_id=entity.order_id,
            user_id=entity.user_id,
            vendor_id=entity.vendor_id,
            amount=entity.amount,
            currency=entity.currency,
            commission_rate=entity.commission_rate,
            commission_amount=entity.commission_amount,
            vendor_amount=entity.vendor_amount,
            payment_method=entity.payment_method.value,
            status=entity.status.value,
            stripe_payment_intent_id=entity.stripe_payment_intent_id,
            stripe_charge_id=entity.stripe_charge_id,
            sslcommerz_transaction_id=entity.sslcommerz_transaction_id,
            sslcommerz_session_key=entity.sslcommerz_session_key,
            sslcommerz_validation_id=entity.sslcommerz_validation_id,
            sslcommerz_bank_tran_id=entity.sslcommerz_bank_tran_id,
            gateway_response=entity.gateway_response,
            extra_metadata=entity.metadata,
            failure_reason=entity.failure_reason,
            refund_amount=entity.refund_amount,
            payout_id=entity.payout_id,
            earnings_credited=entity.earnings_credited,
            processed_at=entity.processed_at,
            completed_at=entity.completed_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _one(self, *criteria) -> Optional[Transaction]:
        result = await self.session.execute(
            select(TransactionModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易记录"""
        db_txn = self._to_model(transaction)
        self.session.add(db_txn)
        await self.session.flush()
        await self.session.refresh(db_txn)
        logger.info(
            "transaction_created",
            transaction_id=db_txn.id,
            transaction_number=db_txn.transaction_number,
            order_id=db_txn.order_id,
            method=db_txn.payment_method,
            amount=str(db_txn.amount),
        )
        return self._to_entity(db_txn)

    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        return await self._one(TransactionModel.id == transaction_id)

    async def get_by_number(self, transaction_number: str) -> Optional[Transaction]:
        return await self._one(TransactionModel.transaction_number == transaction_number)

    async def get_by_stripe_intent(self, intent_id: str) -> Optional[Transaction]:
        return await self._one(TransactionModel.stripe_payment_intent_id == intent_id)

    async def find_active_for_order(self, order_id: int) -> Optional[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.order_id == order_id,
                TransactionModel.type == TransactionType.PAYMENT.value,
                TransactionModel.status.in_(
                    [TransactionStatus.PROCESSING.value, TransactionStatus.COMPLETED.value]
                ),
            )
            .order_by(TransactionModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def transition(
        self,
        transaction_id: int,
        from_statuses: Iterable[TransactionStatus],
        values: dict,
    ) -> bool:
        allowed = [s.value for s in from_statuses]
        result = await self.session.execute(
            update(TransactionModel)
            .where(TransactionModel.id == transaction_id, TransactionModel.status.in_(allowed))
            .values(_column_values(values))
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        logger.info(
            "transaction_transition",
            transaction_id=transaction_id,
            from_statuses=allowed,
            to_status=values.get("status").value if isinstance(values.get("status"), Enum) else values.get("status"),
            applied=applied,
        )
        return applied

    async def update_refund(
        self,
        transaction_id: int,
        *,
        expected_status: TransactionStatus,
        expected_refund_amount: Decimal,
        values: dict,
    ) -> bool:
        result = await self.session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.id == transaction_id,
                TransactionModel.status == expected_status.value,
                TransactionModel.refund_amount == expected_refund_amount,
            )
            .values(_column_values(values))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_earnings_credited(self, transaction_id: int) -> bool:
        result = await self.session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.id == transaction_id,
                TransactionModel.earnings_credited.is_(False),
            )
            .values(earnings_credited=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _filtered(self, query, user_id, vendor_id, status, methods):
        query = query.where(TransactionModel.type == TransactionType.PAYMENT.value)
        if user_id is not None:
            query = query.where(TransactionModel.user_id == user_id)
        if vendor_id is not None:
            query = query.where(TransactionModel.vendor_id == vendor_id)
        if status is not None:
            query = query.where(TransactionModel.status == status.value)
        if methods:
            query = query.where(TransactionModel.payment_method.in_([m.value for m in methods]))
        return query

    async def list(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[TransactionStatus] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Transaction]:
        query = self._filtered(select(TransactionModel), user_id, vendor_id, status, methods)
        query = query.order_by(TransactionModel.created_at.desc(), TransactionModel.id.desc())
        result = await self.session.execute(
            query.offset(skip).limit(limit).execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[TransactionStatus] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> int:
        query = self._filtered(select(func.count(TransactionModel.id)), user_id, vendor_id, status, methods)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_uncredited_completed(self, limit: int = 100) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.type == TransactionType.PAYMENT.value,
                TransactionModel.status == TransactionStatus.COMPLETED.value,
                TransactionModel.earnings_credited.is_(False),
            )
            .order_by(TransactionModel.completed_at.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> List[dict]:
        query = select(
            TransactionModel.status,
            func.count(TransactionModel.id),
            func.coalesce(func.sum(TransactionModel.amount), 0),
            func.coalesce(func.sum(TransactionModel.commission_amount), 0),
            func.coalesce(func.sum(TransactionModel.vendor_amount), 0),
        )
        query = self._filtered(query, None, vendor_id, None, methods)
        if start is not None:
            query = query.where(TransactionModel.created_at >= start)
        if end is not None:
            query = query.where(TransactionModel.created_at <= end)
        result = await self.session.execute(query.group_by(TransactionModel.status))
        return [
            {
                "status": status,
                "count": count,
                "amount": _money(amount),
                "commission_amount": _money(commission),
                "vendor_amount": _money(vendor_amount),
            }
            for status, count, amount, commission, vendor_amount in result.all()
        ]

    async def revenue_by_day(
        self,
        *,
        start: datetime,
        end: datetime,
        vendor_id: Optional[int] = None,
    ) -> List[dict]:
        day = func.date(TransactionModel.completed_at)
        query = (
            select(
                day.label("day"),
                func.count(TransactionModel.id),
                func.coalesce(func.sum(TransactionModel.amount), 0),
                func.coalesce(func.sum(TransactionModel.commission_amount), 0),
            )
            .where(
                TransactionModel.type == TransactionType.PAYMENT.value,
                TransactionModel.status.in_(
                    [TransactionStatus.COMPLETED.value, TransactionStatus.PARTIALLY_REFUNDED.value]
                ),
                TransactionModel.completed_at >= start,
                TransactionModel.completed_at <= end,
            )
        )
        if vendor_id is not None:
            query = query.where(TransactionModel.vendor_id == vendor_id)
        result = await self.session.execute(query.group_by(day).order_by(day))
        return [
            {"date": str(d), "count": count, "revenue": _money(amount), "commission": _money(commission)}
            for d, count, amount, commission in result.all()
        ]

    # ---- payout linkage ----

    def _payout_eligible(self):
        return (
            TransactionModel.type == TransactionType.PAYMENT.value,
            TransactionModel.status == TransactionStatus.COMPLETED.value,
            TransactionModel.payout_id.is_(None),
        )

    async def list_payout_candidates(
        self,
        vendor_id: int,
        *,
        start: datetime,
        end: datetime,
    ) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.vendor_id == vendor_id,
                TransactionModel.completed_at >= start,
                TransactionModel.completed_at <= end,
                *self._payout_eligible(),
            )
            .order_by(TransactionModel.completed_at.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def claim_for_payout(self, transaction_id: int, payout_id: int) -> bool:
        result = await self.session.execute(
            update(TransactionModel)
            .where(TransactionModel.id == transaction_id, *self._payout_eligible())
            .values(payout_id=payout_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_payout(self, payout_id: int) -> int:
        result = await self.session.execute(
            update(TransactionModel)
            .where(TransactionModel.payout_id == payout_id)
            .values(payout_id=None)
            .execution_options(synchronize_session=False)
        )
        logger.info("payout_transactions_released", payout_id=payout_id, count=result.rowcount)
        return result.rowcount

    async def available_balance(self, vendor_id: int) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(TransactionModel.vendor_amount), 0)).where(
                TransactionModel.vendor_id == vendor_id,
                *self._payout_eligible(),
            )
        )
        return _money(result.scalar_one())
