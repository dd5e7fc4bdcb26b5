"""
交易仓储接口 - 定义交易数据访问的抽象接口

所有竞态敏感字段（status、refund_amount、payout_id、earnings_credited）
只能通过条件更新修改，返回值表示本次调用是否真正生效。
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from .entity import PaymentMethod, Transaction, TransactionStatus


class TransactionRepository(ABC):
    """交易仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def get_by_number(self, transaction_number: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def get_by_stripe_intent(self, intent_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_active_for_order(self, order_id: int) -> Optional[Transaction]:
        """订单上处于 processing 或 completed 的支付交易"""
        pass

    @abstractmethod
    async def transition(
        self,
        transaction_id: int,
        from_statuses: Iterable[TransactionStatus],
        values: dict,
    ) -> bool:
        """仅当当前状态属于 from_statuses 时写入 values（比较并设置）"""
        pass

    @abstractmethod
    async def update_refund(
        self,
        transaction_id: int,
        *,
        expected_status: TransactionStatus,
        expected_refund_amount: Decimal,
        values: dict,
    ) -> bool:
        pass

    @abstractmethod
    async def mark_earnings_credited(self, transaction_id: int) -> bool:
        """earnings_credited 由 False 置为 True；已置位返回 False"""
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def count(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[TransactionStatus] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> int:
        pass

    @abstractmethod
    async def list_uncredited_completed(self, limit: int = 100) -> List[Transaction]:
        pass

    @abstractmethod
    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> List[dict]:
        """按状态分组：count/amount/commission/vendor_amount"""
        pass

    @abstractmethod
    async def revenue_by_day(
        self,
        *,
        start: datetime,
        end: datetime,
        vendor_id: Optional[int] = None,
    ) -> List[dict]:
        pass

    # ---- payout linkage ----

    @abstractmethod
    async def list_payout_candidates(
        self,
        vendor_id: int,
        *,
        start: datetime,
        end: datetime,
    ) -> List[Transaction]:
        pass

    @abstractmethod
    async def claim_for_payout(self, transaction_id: int, payout_id: int) -> bool:
        """仅当 payout_id 为空且交易仍为已完成支付时关联"""
        pass

    @abstractmethod
    async def release_payout(self, payout_id: int) -> int:
        pass

    @abstractmethod
    async def available_balance(self, vendor_id: int) -> Decimal:
        pass
