"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


SEND_EMAIL_TASK = "infrastructure.tasks.tasks.notifications.send_email"


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks."""

    def send_email(self, message: Dict[str, Any]) -> None:
        """Fire-and-forget notification email."""
        self.enqueue(SEND_EMAIL_TASK, kwargs=message)

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        if celery_app.conf.task_always_eager:
            # send_task bypasses eager mode; run registered tasks in-process instead
            celery_app.tasks[task_name].apply(args=args or (), kwargs=kwargs or {})
            return
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
