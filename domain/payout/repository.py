"""
结算仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Payout, PayoutStatus


class PayoutRepository(ABC):

    @abstractmethod
    async def create(self, payout: Payout) -> Payout:
        pass

    @abstractmethod
    async def get_by_id(self, payout_id: int) -> Optional[Payout]:
        pass

    @abstractmethod
    async def save(self, payout: Payout, *, expected_status: PayoutStatus) -> bool:
        """仅当数据库中的状态仍为 expected_status 时写回"""
        pass

    @abstractmethod
    async def list(
        self,
        *,
        vendor_id: Optional[int] = None,
        status: Optional[PayoutStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Payout]:
        pass

    @abstractmethod
    async def count(self, *, vendor_id: Optional[int] = None, status: Optional[PayoutStatus] = None) -> int:
        pass

    @abstractmethod
    async def statistics(self, *, vendor_id: Optional[int] = None) -> List[dict]:
        pass
