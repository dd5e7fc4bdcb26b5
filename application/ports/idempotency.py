"""
Best-effort duplicate suppression for inbound gateway events.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EventDeduplicator(Protocol):
    async def first_seen(self, key: str, ttl_seconds: int) -> bool:
        """Return True the first time ``key`` is seen within ``ttl_seconds``."""
        ...

    async def forget(self, key: str) -> None:
        """Drop ``key`` so a redelivery after a failed handler is processed."""
        ...
