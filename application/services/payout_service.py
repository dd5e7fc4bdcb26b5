"""
结算应用服务 - 汇总供应商已完成交易并生成结算单

一笔交易至多关联一个结算单：关联通过条件更新（payout_id IS NULL）完成，
与结算单插入处于同一数据库事务中。
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from application.dtos.payouts import (
    BalanceDTO,
    PayoutCompleteDTO,
    PayoutProcessDTO,
    PayoutRequestDTO,
    PayoutResponseDTO,
)
from application.ports.notifier import Notifier, NullNotifier
from application.services.access import require_vendor
from application.services.config import MarketplaceConfig
from application.services.order_service import publish_safely
from core.logging_config import get_logger
from domain.catalog.entity import Vendor, VendorApprovalStatus
from domain.common.actor import Actor
from domain.common.clock import ensure_utc, utcnow
from domain.common.exceptions import (
    ConflictError,
    ForbiddenError,
    NoFundsError,
    NotFoundError,
)
from domain.common.money import ZERO
from domain.common.reference import generate_reference
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payout.entity import Payout, PayoutAction, PayoutMethod, PayoutStatus
from domain.payout.events import (
    PayoutApproved,
    PayoutCompleted,
    PayoutEvent,
    PayoutRejected,
    PayoutRequested,
)


logger = get_logger(__name__)


def _event(cls, payout: Payout, vendor_email: Optional[str], **extra) -> PayoutEvent:
    return cls(
        payout_id=payout.id,
        payout_number=payout.payout_number,
        vendor_id=payout.vendor_id,
        amount=str(payout.amount),
        currency=payout.currency,
        vendor_email=vendor_email,
        **extra,
    )


class PayoutService:
    """结算应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: MarketplaceConfig,
        notifier: Optional[Notifier] = None,
    ):
        self._uow_factory = uow_factory
        self._config = config
        self._notifier = notifier or NullNotifier()

    @staticmethod
    def _ensure_can_request(vendor: Vendor) -> None:
        if vendor.approval_status != VendorApprovalStatus.APPROVED:
            raise ForbiddenError("Vendor account is not approved")

    def _period(self, dto: PayoutRequestDTO, now: datetime) -> Tuple[datetime, datetime]:
        end = ensure_utc(dto.period_end) or now
        start = ensure_utc(dto.period_start) or end - timedelta(days=self._config.default_payout_period_days)
        return start, end

    async def request(self, actor: Actor, dto: PayoutRequestDTO) -> PayoutResponseDTO:
        """供应商申请结算；没有可结算交易时抛出 NoFundsError 并回滚"""
        now = utcnow()
        start, end = self._period(dto, now)

        async with self._uow_factory() as uow:
            vendor = await require_vendor(uow, actor)
            self._ensure_can_request(vendor)

            candidates = await uow.transaction_repository.list_payout_candidates(vendor.id, start=start, end=end)
            if not candidates:
                raise NoFundsError()
            # 一张结算单只汇总同一币种
            currency = candidates[0].currency
            candidates = [t for t in candidates if t.currency == currency]

            payout = await uow.payout_repository.create(
                Payout(
                    id=None,
                    payout_number=generate_reference("PO", now),
                    vendor_id=vendor.id,
                    amount=ZERO,
                    currency=currency,
                    payment_method=PayoutMethod(dto.payment_method),
                    period_start=start,
                    period_end=end,
                    bank_details=dto.bank_details,
                    mobile_banking_details=dto.mobile_banking_details,
                    notes=dto.notes,
                    created_at=now,
                    updated_at=now,
                )
            )

            claimed: List[int] = []
            total = ZERO
            for txn in candidates:
                if await uow.transaction_repository.claim_for_payout(txn.id, payout.id):
                    claimed.append(txn.id)
                    total += txn.vendor_amount
            if not claimed or total <= ZERO:
                raise NoFundsError()

            payout.link(claimed, total)
            await self._store(uow, payout, PayoutStatus.PENDING)

        logger.info(
            "payout_requested",
            payout_id=payout.id,
            vendor_id=vendor.id,
            amount=str(total),
            transaction_count=len(claimed),
            skipped=len(candidates) - len(claimed),
        )
        await publish_safely(
            self._notifier,
            [_event(PayoutRequested, payout, vendor.email, transaction_count=len(claimed))],
            payout_id=payout.id,
        )
        return PayoutResponseDTO.from_entity(payout)

    async def _load(self, uow: AbstractUnitOfWork, payout_id: int) -> Payout:
        payout = await uow.payout_repository.get_by_id(payout_id)
        if payout is None:
            raise NotFoundError("Payout", payout_id)
        return payout

    async def _store(self, uow: AbstractUnitOfWork, payout: Payout, expected: PayoutStatus) -> None:
        if not await uow.payout_repository.save(payout, expected_status=expected):
            raise ConflictError("Payout was modified concurrently", details={"payout_id": payout.id})

    async def process(self, actor: Actor, payout_id: int, dto: PayoutProcessDTO) -> PayoutResponseDTO:
        """管理员审核：approve -> processing；reject -> cancelled 并释放交易"""
        action = PayoutAction(dto.action)
        async with self._uow_factory() as uow:
            payout = await self._load(uow, payout_id)
            vendor = await uow.vendor_repository.get_by_id(payout.vendor_id)
            if action == PayoutAction.APPROVE:
                payout.approve(actor.id, dto.notes, dto.gateway_transaction_id)
                await self._store(uow, payout, PayoutStatus.PENDING)
                event = _event(PayoutApproved, payout, vendor.email if vendor else None)
            else:
                payout.reject(actor.id, dto.notes)
                await self._store(uow, payout, PayoutStatus.PENDING)
                await uow.transaction_repository.release_payout(payout.id)
                event = _event(PayoutRejected, payout, vendor.email if vendor else None, notes=dto.notes)

        logger.info("payout_processed", payout_id=payout.id, action=action.value, admin_id=actor.id)
        await publish_safely(self._notifier, [event], payout_id=payout.id)
        return PayoutResponseDTO.from_entity(payout)

    async def complete(self, actor: Actor, payout_id: int, dto: PayoutCompleteDTO) -> PayoutResponseDTO:
        async with self._uow_factory() as uow:
            payout = await self._load(uow, payout_id)
            payout.complete(dto.gateway_transaction_id, dto.gateway_response)
            await self._store(uow, payout, PayoutStatus.PROCESSING)
            vendor = await uow.vendor_repository.get_by_id(payout.vendor_id)

        logger.info(
            "payout_completed",
            payout_id=payout.id,
            admin_id=actor.id,
            gateway_transaction_id=dto.gateway_transaction_id,
        )
        event = _event(
            PayoutCompleted,
            payout,
            vendor.email if vendor else None,
            gateway_transaction_id=dto.gateway_transaction_id,
        )
        await publish_safely(self._notifier, [event], payout_id=payout.id)
        return PayoutResponseDTO.from_entity(payout)

    # ---- queries ----

    async def available_balance(self, actor: Actor) -> BalanceDTO:
        async with self._uow_factory(readonly=True) as uow:
            vendor = await require_vendor(uow, actor)
            balance = await uow.transaction_repository.available_balance(vendor.id)
        return BalanceDTO(vendor_id=vendor.id, available_balance=balance, currency=self._config.currency)

    async def get(self, actor: Actor, payout_id: int) -> PayoutResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            payout = await self._load(uow, payout_id)
            if not actor.is_admin:
                vendor = await require_vendor(uow, actor)
                if vendor.id != payout.vendor_id:
                    raise ForbiddenError("Not authorized to access this payout")
        return PayoutResponseDTO.from_entity(payout)

    async def _list(self, *, page: int, limit: int, **filters) -> Tuple[List[PayoutResponseDTO], int]:
        skip, limit = self._config.page_window(page, limit)
        async with self._uow_factory(readonly=True) as uow:
            items = await uow.payout_repository.list(skip=skip, limit=limit, **filters)
            total = await uow.payout_repository.count(**filters)
        return [PayoutResponseDTO.from_entity(p) for p in items], int(total)

    async def list_for_vendor(
        self, actor: Actor, *, status: Optional[PayoutStatus] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[PayoutResponseDTO], int]:
        async with self._uow_factory(readonly=True) as uow:
            vendor = await require_vendor(uow, actor)
        return await self._list(vendor_id=vendor.id, status=status, page=page, limit=limit)

    async def list_all(
        self,
        *,
        vendor_id: Optional[int] = None,
        status: Optional[PayoutStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[PayoutResponseDTO], int]:
        return await self._list(vendor_id=vendor_id, status=status, page=page, limit=limit)

    async def statistics(self, *, vendor_id: Optional[int] = None) -> dict:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.payout_repository.statistics(vendor_id=vendor_id)
        return {
            "total_payouts": sum(r["count"] for r in rows),
            "total_amount": sum((r["amount"] for r in rows), ZERO),
            "by_status": {r["status"]: {"count": r["count"], "amount": r["amount"]} for r in rows},
        }
