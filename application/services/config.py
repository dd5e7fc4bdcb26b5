"""
Runtime configuration handed to application services at the composition root.

Services never read environment variables themselves.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class GatewayConfig:
    commission_rate: Decimal = Decimal("5")
    currency: str = "USD"
    redirect_currency: str = "BDT"
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    webhook_dedupe_ttl_seconds: int = 86400

    def callback_url(self, kind: str) -> str:
        return f"{self.backend_url.rstrip('/')}/api/v1/payments/sslcommerz/{kind}"

    def frontend_result_url(self, outcome: str, transaction_number: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/payment/{outcome}?transaction={transaction_number}"


@dataclass(frozen=True)
class MarketplaceConfig:
    platform_fee_percent: Decimal = Decimal("5")
    tax_percent: Decimal = Decimal("0")
    currency: str = "USD"
    default_payout_period_days: int = 30
    default_page_size: int = 20
    max_page_size: int = 100

    def page_window(self, page: int, limit: int) -> tuple[int, int]:
        return page_window(page, limit, self.max_page_size, self.default_page_size)


def page_window(page: int, limit: int, max_page_size: int, default: int = 20) -> tuple[int, int]:
    """(skip, limit)，limit 受 max_page_size 限制"""
    limit = max(1, min(limit or default, max_page_size))
    page = max(1, page or 1)
    return (page - 1) * limit, limit
