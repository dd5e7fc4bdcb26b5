"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers subclass and implement the gateway port they serve.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_OUTCOME


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _call(self, fn: Callable[[], Awaitable[Any]], *, retry: bool = False):
        """Run an HTTP call and translate transport failures into provider errors."""
        try:
            return await (self._retry(fn) if retry else fn())
        except httpx.TimeoutException as exc:
            raise PaymentTimeoutError(f"timeout: {exc}", provider=self.provider) from exc
        except httpx.TransportError as exc:
            raise PaymentRecoverableError(f"transport error: {exc}", provider=self.provider) from exc
        except httpx.HTTPStatusError as exc:
            raise PaymentProviderError(
                f"HTTP {exc.response.status_code}",
                provider=self.provider,
                provider_code=str(exc.response.status_code),
            ) from exc

    # Helpers
    def _outcome(self, provider_status: Optional[str]) -> str:
        mapping = PROVIDER_STATUS_TO_OUTCOME.get(self.provider, {})
        return mapping.get(provider_status or "", "pending")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
