"""
Actor access checks shared by the order, ledger and payout services.
"""
from __future__ import annotations

from domain.catalog.entity import Vendor
from domain.common.actor import Actor
from domain.common.exceptions import ForbiddenError, NotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork


async def require_vendor(uow: AbstractUnitOfWork, actor: Actor) -> Vendor:
    """当前用户的供应商档案；不存在或被停用时报错"""
    vendor = await uow.vendor_repository.get_by_user_id(actor.id)
    if vendor is None:
        raise NotFoundError("Vendor profile", actor.id)
    if not vendor.is_active:
        raise ForbiddenError("Vendor account is deactivated")
    return vendor


async def ensure_can_view(uow: AbstractUnitOfWork, actor: Actor, *, user_id: int, vendor_id: int) -> None:
    """资源的下单用户、所属供应商或管理员可见"""
    if actor.is_admin or actor.id == user_id:
        return
    if actor.is_vendor:
        vendor = await uow.vendor_repository.get_by_user_id(actor.id)
        if vendor is not None and vendor.id == vendor_id:
            return
    raise ForbiddenError("Not authorized to access this resource")
