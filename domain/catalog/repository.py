"""
目录仓储接口
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from .entity import Service, Vendor


class VendorRepository(ABC):

    @abstractmethod
    async def get_by_id(self, vendor_id: int) -> Optional[Vendor]:
        pass

    @abstractmethod
    async def get_by_user_id(self, user_id: int) -> Optional[Vendor]:
        pass

    @abstractmethod
    async def credit_earnings(self, vendor_id: int, revenue: Decimal, commission: Decimal) -> None:
        """原子累加供应商收入与平台佣金"""
        pass

    @abstractmethod
    async def increment_order_count(self, vendor_id: int) -> None:
        pass


class ServiceRepository(ABC):

    @abstractmethod
    async def get_by_id(self, service_id: int) -> Optional[Service]:
        pass
