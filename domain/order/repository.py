"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Order, OrderPaymentStatus, OrderStatus


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """乐观并发写回：仅当 version 未变化时更新，否则抛出 ConflictError"""
        pass

    @abstractmethod
    async def set_payment_status(
        self,
        order_id: int,
        status: OrderPaymentStatus,
        *,
        unless: Optional[OrderPaymentStatus] = None,
    ) -> bool:
        """条件更新支付状态；当前状态等于 unless 时不更新"""
        pass

    @abstractmethod
    async def list(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def count(
        self,
        *,
        user_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        pass

    @abstractmethod
    async def count_coupon_usage(self, user_id: int, code: str) -> int:
        """统计用户使用某优惠券的订单数（不含已取消订单）"""
        pass

    @abstractmethod
    async def statistics(
        self,
        *,
        vendor_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[dict]:
        """按状态分组统计数量与金额"""
        pass
