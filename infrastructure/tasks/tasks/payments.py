"""
Payment reconciliation tasks.

Each run builds its own engine so pooled connections never cross event loops
(``asyncio.run`` creates a fresh loop per task).
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ..notifier import CeleryNotifier
from ..utils.base_task import BaseTask
from application.services.ledger_service import TransactionLedger
from core.config import settings
from core.logging_config import get_logger
from infrastructure.composition import gateway_config, uow_factory
from infrastructure.database import build_async_url

logger = get_logger(__name__)


@asynccontextmanager
async def _ledger():
    engine = create_async_engine(build_async_url(settings.database.url))
    try:
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
        yield TransactionLedger(uow_factory(session_factory), gateway_config(), CeleryNotifier())
    finally:
        await engine.dispose()


@shared_task(bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def reconcile_transaction(self, transaction_id: int) -> dict:
    async def _run():
        async with _ledger() as ledger:
            return await ledger.reconcile(transaction_id)

    return asyncio.run(_run())


@shared_task(bind=True, base=BaseTask)
def reconcile_pending_transactions(self, limit: int = 100) -> dict:
    async def _run():
        async with _ledger() as ledger:
            return await ledger.reconcile_pending(limit=limit)

    credited = asyncio.run(_run())
    logger.info("reconcile_pending_done", credited=credited)
    return {"credited": credited}
