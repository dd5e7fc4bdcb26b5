"""
优惠券仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Coupon


class CouponRepository(ABC):

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def get_by_id(self, coupon_id: int) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def try_increment_usage(self, coupon_id: int) -> bool:
        """在上限内原子地 usage_count + 1；达到上限返回 False"""
        pass

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        pass
