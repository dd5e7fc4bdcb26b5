"""Notification email tasks"""
from __future__ import annotations

import httpx
from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(httpx.TransportError, httpx.HTTPStatusError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_email(self, to: str, subject: str, body: str, event: str, event_id: str) -> dict:
    """Deliver one notification through the email service HTTP API.

    Without ``EMAIL__API_URL`` the message is only logged (development).
    """
    cfg = settings.email
    if not cfg.api_url:
        logger.info("email_logged", to=to, subject=subject, notification_event=event, event_id=event_id)
        return {"delivered": False}

    headers = {"Idempotency-Key": f"{event_id}:{to}"}
    if cfg.api_key:
        headers["Authorization"] = f"Bearer {cfg.api_key}"
    response = httpx.post(
        cfg.api_url,
        json={"from": cfg.sender, "to": [to], "subject": subject, "text": body},
        headers=headers,
        timeout=cfg.timeout,
    )
    response.raise_for_status()
    logger.info("email_sent", to=to, notification_event=event, event_id=event_id, status=response.status_code)
    return {"delivered": True}
