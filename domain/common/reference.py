"""Human-readable reference numbers (ORD-/TXN-/PO-)."""
from __future__ import annotations

import secrets
from datetime import datetime
from typing import Optional

from domain.common.clock import utcnow


def generate_reference(prefix: str, now: Optional[datetime] = None) -> str:
    stamp = (now or utcnow()).strftime("%Y%m%d")
    return f"{prefix}-{stamp}-{secrets.token_hex(4).upper()}"
