"""
Notification port: domain events are handed over after commit.

Implementations must never raise; a failed notification is logged, not
propagated to the request that produced the event.
"""
from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    async def publish(self, events: Iterable[object]) -> None: ...


class NullNotifier:
    """Drops every event (used when no task broker is wired)."""

    async def publish(self, events: Iterable[object]) -> None:
        return None
