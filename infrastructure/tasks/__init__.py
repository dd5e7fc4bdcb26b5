"""Celery task infrastructure package.

Importing this module wires together the configured Celery app, the
dispatcher facade and the notifier that higher layers depend upon.
"""
from .config.celery import celery_app
from .notifier import CeleryNotifier
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "CeleryNotifier", "TaskDispatcher"]
