"""
目录读模型 - 供应商与服务

Vendor/Service 的增删改由目录模块负责，这里只保留订单与结算需要的字段。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.money import ZERO


class VendorApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Vendor:
    id: Optional[int]
    user_id: int
    company_name: str
    email: Optional[str] = None
    approval_status: VendorApprovalStatus = VendorApprovalStatus.PENDING
    is_active: bool = True
    total_revenue: Decimal = ZERO
    commission: Decimal = ZERO
    total_orders: int = 0

    @property
    def can_take_orders(self) -> bool:
        """审核通过且处于启用状态"""
        return self.is_active and self.approval_status == VendorApprovalStatus.APPROVED


@dataclass
class Service:
    id: Optional[int]
    vendor_id: int
    name: str
    price: Decimal
    category_id: Optional[int] = None
    discount: Decimal = ZERO  # 百分比
    duration: int = 60  # 分钟
    is_active: bool = True
    is_available: bool = True

    @property
    def bookable(self) -> bool:
        return self.is_active and self.is_available
