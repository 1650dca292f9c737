"""Webhook delivery.

Provides a webhook dispatcher built on `httpx.AsyncClient` with bounded
exponential backoff. Transport errors, 5xx and 429 responses are retried up
to `max_attempts`; other 4xx responses abandon the delivery immediately.
A delivery never raises: the outcome is reported as a `DeliveryRecord`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..schemas.domain import DeliveryRecord, DeliveryStatus, GatewayEvent

_USER_AGENT = "aucip-gateway-webhooks/1.0"


def _retryable(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class WebhookDispatcher:
    """POST gateway events to subscriber callbacks.

    Usage guidelines:
    - Prefer a caller-provided AsyncClient when you need custom timeouts/proxies.
    - `sleep` is injectable so tests can run the backoff schedule instantly.
    """

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        max_attempts: int = 5,
        backoff_initial: float = 0.5,
        backoff_factor: float = 2.0,
        backoff_max: float = 8.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
        self._max_attempts = max_attempts
        self._backoff_initial = backoff_initial
        self._backoff_factor = backoff_factor
        self._backoff_max = backoff_max
        self._sleep = sleep
        self._logger = logging.getLogger(__name__)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(self._backoff_initial * (self._backoff_factor ** (attempt - 1)), self._backoff_max)

    def _headers(self, subscription_id: str, event: GatewayEvent) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
            "X-AUCIP-Event": event.type.value,
            "X-AUCIP-Delivery": event.id,
            "X-AUCIP-Subscription": subscription_id,
        }

    @staticmethod
    def body(subscription_id: str, event: GatewayEvent) -> Dict[str, Any]:
        return {
            "subscriptionId": subscription_id,
            "event": {
                "id": event.id,
                "type": event.type.value,
                "capability": event.capability_id,
                "jobId": event.job_id,
                "occurredAt": event.occurred_at.isoformat(),
                "payload": event.payload,
            },
        }

    async def deliver(self, subscription_id: str, callback: str, event: GatewayEvent) -> DeliveryRecord:
        """Deliver one event to one callback, retrying transient failures.

        Returns:
            A `DeliveryRecord` with status `delivered` or `abandoned`.
        """
        headers = self._headers(subscription_id, event)
        payload = self.body(subscription_id, event)
        attempts = 0
        status_code: Optional[int] = None
        last_error: Optional[str] = None

        while attempts < self._max_attempts:
            attempts += 1
            try:
                self._logger.debug("Webhook POST %s event=%s attempt=%d", callback, event.type.value, attempts)
                r = await self._client.post(callback, headers=headers, json=payload)
            except httpx.TransportError as e:
                status_code = None
                last_error = str(e) or type(e).__name__
            else:
                status_code = r.status_code
                if r.is_success:
                    return DeliveryRecord(
                        subscription_id=subscription_id,
                        event_id=event.id,
                        attempts=attempts,
                        status=DeliveryStatus.delivered,
                        status_code=status_code,
                    )
                last_error = f"HTTP {status_code}"
                if not _retryable(status_code):
                    self._logger.warning(
                        "Webhook %s rejected event %s with %s; not retrying", callback, event.id, status_code
                    )
                    break

            if attempts < self._max_attempts:
                sleep_s = self.backoff_delay(attempts)
                self._logger.warning(
                    "Webhook delivery to %s failed (%s); retrying in %ss (attempt %s/%s)",
                    callback,
                    last_error,
                    sleep_s,
                    attempts + 1,
                    self._max_attempts,
                )
                await self._sleep(sleep_s)

        self._logger.error(
            "Webhook delivery to %s abandoned after %d attempts: %s", callback, attempts, last_error
        )
        return DeliveryRecord(
            subscription_id=subscription_id,
            event_id=event.id,
            attempts=attempts,
            status=DeliveryStatus.abandoned,
            status_code=status_code,
            last_error=last_error,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()
