"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials can be rotated
without touching the application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    dedupe_ttl_seconds: int = 86400


class PaymentUrls(BaseModel):
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class SSLCommerzSettings(BaseModel):
    store_id: Optional[str] = None
    store_password: Optional[str] = None
    is_live: bool = False
    currency: str = "BDT"

    @property
    def base_url(self) -> str:
        return "https://securepay.sslcommerz.com" if self.is_live else "https://sandbox.sslcommerz.com"


class PaymentSettings(BaseSettings):
    commission_rate: float = Field(default=5.0, validation_alias="PAYMENT__COMMISSION_RATE")
    urls: PaymentUrls = Field(default_factory=PaymentUrls)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    sslcommerz: SSLCommerzSettings = Field(default_factory=SSLCommerzSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
