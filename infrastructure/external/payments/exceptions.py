"""
Exceptions for payment providers mapped to unified BusinessException variants.

Provider failures are ``GatewayError`` subclasses so the application layer can
handle every adapter uniformly; the client only ever sees the sanitized
message while ``reason`` carries the provider text.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException, GatewayError
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(GatewayError):
    code_value = PaymentCode.PROVIDER_ERROR

    def __init__(self, reason: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(reason, provider=provider)
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        self.code = self.code_value
        self.error_type = type(self).__name__
        self.details = full_details


class PaymentRecoverableError(PaymentProviderError):
    """Transient failure (rate limit, connection reset); safe to retry."""

    code_value = PaymentCode.PROVIDER_RECOVERABLE


class PaymentTimeoutError(PaymentRecoverableError):
    code_value = PaymentCode.TIMEOUT


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )
