"""
优惠券校验 DTO
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic.types import condecimal

from application.dtos.common import DTOBase


class CouponValidateDTO(DTOBase):
    code: str = Field(..., min_length=1, max_length=50)
    order_amount: condecimal(ge=0, decimal_places=2)  # type: ignore[valid-type]
    service_id: Optional[int] = None
    category_id: Optional[int] = None
    vendor_id: Optional[int] = None


class CouponValidationResultDTO(DTOBase):
    valid: bool
    code: str
    reason: Optional[str] = None
    message: Optional[str] = None
    discount_amount: Decimal = Decimal("0.00")
    final_amount: Optional[Decimal] = None
