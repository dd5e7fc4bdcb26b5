"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class ValidationError(BusinessException):
    """Missing or malformed input."""

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class NotFoundError(BusinessException):
    def __init__(self, resource: str, identifier: object | None = None):
        details = {"resource": resource}
        if identifier is not None:
            details["id"] = str(identifier)
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{resource} not found",
            error_type="NotFound",
            details=details,
        )


class ForbiddenError(BusinessException):
    """Authorization, ownership or deactivation failures."""

    def __init__(self, message: str = "Not authorized to perform this action", *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            details=details,
        )


class InvalidStateError(BusinessException):
    """Action is illegal for the entity's current status."""

    def __init__(self, message: str, *, current: str | None = None, action: str | None = None):
        details = {}
        if current is not None:
            details["current_status"] = current
        if action is not None:
            details["action"] = action
        super().__init__(
            code=BusinessCode.INVALID_STATE,
            message=message,
            error_type="InvalidState",
            details=details or None,
            field="status",
        )


class ConflictError(BusinessException):
    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.CONFLICT,
            message=message,
            error_type="Conflict",
            details=details,
        )


class GatewayError(BusinessException):
    """Upstream payment provider failure.

    ``message`` is what the client sees; ``reason`` stays internal (logs and
    the transaction's failure_reason).
    """

    def __init__(self, reason: str, *, provider: str, message: str = "Payment gateway error"):
        self.reason = reason
        self.provider = provider
        super().__init__(
            code=BusinessCode.GATEWAY_ERROR,
            message=message,
            error_type="GatewayError",
            details={"provider": provider},
        )


class NoFundsError(BusinessException):
    def __init__(self, message: str = "No eligible transactions available for payout"):
        super().__init__(
            code=BusinessCode.NO_FUNDS,
            message=message,
            error_type="NoFunds",
        )


class UnavailableError(BusinessException):
    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(
            code=BusinessCode.UNAVAILABLE,
            message=message,
            error_type="Unavailable",
            details=details,
        )
