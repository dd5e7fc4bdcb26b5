"""
组合根辅助函数 - 把 settings 转换为应用层配置与工作单元工厂

API 依赖注入与 Celery 任务共用，应用层服务本身不读取环境变量。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from application.services.config import GatewayConfig, MarketplaceConfig
from core.config import settings
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        commission_rate=Decimal(str(payment_settings.commission_rate)),
        currency=settings.marketplace.currency,
        redirect_currency=payment_settings.sslcommerz.currency,
        backend_url=payment_settings.urls.backend_url,
        frontend_url=payment_settings.urls.frontend_url,
        webhook_dedupe_ttl_seconds=payment_settings.webhook.dedupe_ttl_seconds,
    )


def marketplace_config() -> MarketplaceConfig:
    mp = settings.marketplace
    return MarketplaceConfig(
        platform_fee_percent=Decimal(str(mp.platform_fee_percent)),
        tax_percent=Decimal(str(mp.tax_percent)),
        currency=mp.currency,
        default_payout_period_days=mp.default_payout_period_days,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
    )


def uow_factory(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
) -> Callable[..., AbstractUnitOfWork]:
    factory = session_factory or AsyncSessionLocal

    def _make(*, readonly: bool = False) -> AbstractUnitOfWork:
        return SQLAlchemyUnitOfWork(factory, readonly=readonly)

    return _make
