"""
优惠券实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import ValidationError
from domain.common.money import ZERO
from domain.common.clock import ensure_utc


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_DELIVERY = "free_delivery"


class CouponStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USED_UP = "used_up"


class CouponScope(str, Enum):
    ALL = "all"
    SPECIFIC_USERS = "specific_users"
    SPECIFIC_CATEGORIES = "specific_categories"
    SPECIFIC_SERVICES = "specific_services"


@dataclass
class Coupon:
    """
    优惠券 - 规则数据，不含计算逻辑（见 evaluator）

    业务规则：
    1. code 唯一且统一大写
    2. usage_limit 为 0 表示不限次数
    """

    id: Optional[int]
    code: str
    name: str
    type: CouponType
    value: Decimal
    start_date: datetime
    end_date: datetime
    status: CouponStatus = CouponStatus.ACTIVE
    description: Optional[str] = None
    min_order_amount: Decimal = ZERO
    max_discount_amount: Optional[Decimal] = None
    usage_limit: int = 0
    usage_count: int = 0
    user_usage_limit: int = 1
    applicable_for: CouponScope = CouponScope.ALL
    applicable_users: list[int] = field(default_factory=list)
    applicable_categories: list[int] = field(default_factory=list)
    applicable_services: list[int] = field(default_factory=list)
    applicable_vendors: list[int] = field(default_factory=list)
    is_first_order_only: bool = False

    def __post_init__(self):
        self.code = normalize_code(self.code)
        self.start_date = ensure_utc(self.start_date)
        self.end_date = ensure_utc(self.end_date)
        if self.value < 0:
            raise ValidationError("Coupon value cannot be negative", field="value")
        if self.type == CouponType.PERCENTAGE and self.value > 100:
            raise ValidationError("Percentage coupon cannot exceed 100", field="value")

    @property
    def unlimited(self) -> bool:
        return self.usage_limit == 0


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()
