"""
Payment Adapter Base

Shared plumbing for provider adapters: bounded timeouts around blocking SDK
calls, exponential backoff for idempotent operations, and status
normalization.
"""

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Callable, Mapping, Optional

from app.config.settings import Settings
from app.domain.interfaces import PaymentProviderAdapter, RemoteSubscription
from app.domain.subscription import ProviderStatus
from app.infrastructure.exceptions import ProviderUnavailableError


logger = logging.getLogger(__name__)


class BaseProviderAdapter(PaymentProviderAdapter):
    """
    Base class for provider adapters.

    Only ``fetch_subscription`` and ``cancel_recurring_subscription``
    are retried; charges and subscription creation are attempted once so a
    lost response can never turn into a second payment.
    """

    def __init__(self, settings: Settings):
        self._timeout = settings.provider_timeout_seconds
        self._max_retries = settings.provider_max_retries
        self._base_delay = settings.retry_base_delay
        self._max_delay = settings.retry_max_delay

    # =========================================================================
    # Idempotent operations (retried)
    # =========================================================================

    async def fetch_subscription(self, provider_id: str) -> RemoteSubscription:
        return await self._retry_with_backoff(
            self._fetch_subscription_once,
            "fetch_subscription",
            provider_id,
        )

    async def cancel_recurring_subscription(self, provider_id: str) -> None:
        await self._retry_with_backoff(
            self._cancel_recurring_subscription_once,
            "cancel_recurring_subscription",
            provider_id,
        )

    @abstractmethod
    async def _fetch_subscription_once(self, provider_id: str) -> RemoteSubscription:
        ...

    @abstractmethod
    async def _cancel_recurring_subscription_once(self, provider_id: str) -> None:
        ...

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _retry_with_backoff(
        self,
        operation: Callable,
        operation_name: str,
        *args,
        **kwargs
    ):
        """Execute operation, retrying transient provider failures."""
        last_exception: Optional[ProviderUnavailableError] = None

        for attempt in range(self._max_retries):
            try:
                return await operation(*args, **kwargs)
            except ProviderUnavailableError as e:
                last_exception = e
                if attempt + 1 >= self._max_retries:
                    break

                delay = min(self._base_delay * (2 ** attempt), self._max_delay)
                logger.warning(
                    f"{self.processor.value} {operation_name} unavailable. "
                    f"Attempt {attempt + 1}/{self._max_retries}. Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise last_exception

    async def _run_sync(
        self,
        operation_name: str,
        fn: Callable[..., Any],
        *args,
        **kwargs
    ) -> Any:
        """Run a blocking SDK call in a worker thread, bounded by the provider timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"{self.processor.value} {operation_name} timed out after {self._timeout}s"
            )
            raise ProviderUnavailableError(
                f"Payment provider timed out during {operation_name}",
                provider=self.processor.value,
                operation=operation_name,
                original_error=e,
            )

    def _normalize(
        self,
        native_status: Optional[str],
        status_map: Mapping[str, ProviderStatus],
        object_kind: str,
    ) -> ProviderStatus:
        """Map a native status onto ProviderStatus; unmapped values become UNKNOWN."""
        normalized = status_map.get(native_status or "")
        if normalized is None:
            logger.warning(
                f"Unmapped {self.processor.value} {object_kind} status {native_status!r}"
            )
            return ProviderStatus.UNKNOWN
        return normalized
