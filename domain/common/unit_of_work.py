"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.catalog.repository import ServiceRepository, VendorRepository
from domain.coupon.repository import CouponRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import TransactionRepository
from domain.payout.repository import PayoutRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象"""

    order_repository: OrderRepository
    transaction_repository: TransactionRepository
    coupon_repository: CouponRepository
    payout_repository: PayoutRepository
    vendor_repository: VendorRepository
    service_repository: ServiceRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.transaction_repository = None  # type: ignore[assignment]
        self.coupon_repository = None  # type: ignore[assignment]
        self.payout_repository = None  # type: ignore[assignment]
        self.vendor_repository = None  # type: ignore[assignment]
        self.service_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
