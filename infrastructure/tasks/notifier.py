"""Notifier backed by Celery: each rendered email becomes one task."""
from __future__ import annotations

from typing import Iterable, Optional

from application.services.notification_service import render
from core.logging_config import get_logger

from .utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryNotifier:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def publish(self, events: Iterable[object]) -> None:
        for event in events:
            for message in render(event):
                try:
                    self._dispatcher.send_email(message.as_task_kwargs())
                except Exception as exc:
                    logger.error(
                        "notification_enqueue_failed",
                        notification_event=message.event,
                        event_id=message.event_id,
                        error=str(exc),
                    )
