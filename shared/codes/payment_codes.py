"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003


# Provider status -> settlement outcome. Anything unmapped is "pending".
PROVIDER_STATUS_TO_OUTCOME = {
    "stripe": {
        "requires_payment_method": "failure",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "pending",
        "requires_capture": "pending",
        "succeeded": "success",
        "canceled": "failure",
    },
    "sslcommerz": {
        # Per validation API `status`
        "VALID": "success",
        "VALIDATED": "success",
        "INVALID_TRANSACTION": "failure",
        "FAILED": "failure",
        "CANCELLED": "failure",
        "EXPIRED": "failure",
        "UNATTEMPTED": "pending",
        "PENDING": "pending",
    },
}
