from decimal import Decimal

import pytest

from application.dtos.coupons import CouponValidateDTO
from application.services.coupon_service import CouponService
from domain.common.exceptions import NotFoundError


@pytest.mark.asyncio
async def test_validate_code_previews_discount(uow_factory, fixed_coupon, customer):
    service = CouponService(uow_factory)
    result = await service.validate_code(customer, CouponValidateDTO(code=" save200", order_amount=Decimal("900.00")))
    assert result.valid
    assert result.code == "SAVE200"
    assert result.discount_amount == Decimal("200.00")
    assert result.final_amount == Decimal("700.00")

    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_id(fixed_coupon.id)
    assert coupon.usage_count == 0


@pytest.mark.asyncio
async def test_validate_code_reports_reason(uow_factory, fixed_coupon, customer):
    service = CouponService(uow_factory)
    result = await service.validate_code(customer, CouponValidateDTO(code="SAVE200", order_amount=Decimal("100.00")))
    assert not result.valid
    assert result.reason == "min_order_not_met"
    assert result.message


@pytest.mark.asyncio
async def test_unknown_code(uow_factory, customer):
    with pytest.raises(NotFoundError):
        await CouponService(uow_factory).validate_code(customer, CouponValidateDTO(code="NOPE", order_amount=Decimal("1")))
