"""
Factories for payment gateway clients.

A gateway without credentials is reported as ``None`` so the API can still
serve manual payments and read endpoints.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import CardPaymentGateway, RedirectPaymentGateway
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings


logger = get_logger(__name__)


def get_card_gateway(settings: PaymentSettings = payment_settings) -> Optional[CardPaymentGateway]:
    if not settings.stripe.secret_key:
        logger.warning("payment_gateway_not_configured", provider="stripe")
        return None
    from .stripe_client import StripeClient
    return StripeClient(settings)


def get_redirect_gateway(settings: PaymentSettings = payment_settings) -> Optional[RedirectPaymentGateway]:
    if not settings.sslcommerz.store_id or not settings.sslcommerz.store_password:
        logger.warning("payment_gateway_not_configured", provider="sslcommerz")
        return None
    from .sslcommerz_client import SSLCommerzClient
    return SSLCommerzClient(settings)
