from __future__ import annotations

"""Subscription lifecycle and event matching.

``SubscriptionManager`` exclusively owns ``Subscription`` entries. A
subscription is validated completely before it is stored, is read-only
afterwards (except last-delivery bookkeeping), and stops matching events
once ``now >= expires_at``.

``publish`` is the ``EventSink`` entry point used by the engine and the job
manager. It only schedules matching and delivery on the running loop and
returns immediately, so emitters are never blocked by webhook I/O.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set
from urllib.parse import urlsplit

from ..capabilities.registry import CapabilityRegistry
from ..errors import InvalidSubscriptionRequest, SubscriptionNotFound
from ..events import EventSink
from ..schemas.domain import (
    DeliveryRecord,
    DeliveryStatus,
    EventType,
    GatewayEvent,
    Principal,
    Subscription,
)
from .dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

_EVENT_TYPES = {e.value: e for e in EventType}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionManager(EventSink):
    """Register subscriptions and deliver matching events to their callbacks."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        dispatcher: WebhookDispatcher,
        *,
        default_duration_seconds: int = 3600,
        max_duration_seconds: int = 30 * 86400,
        allowed_schemes: Iterable[str] = ("https",),
        clock: Callable[[], datetime] = _utc_now,
        history_size: int = 1000,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._default_duration = default_duration_seconds
        self._max_duration = max_duration_seconds
        self._schemes = {s.lower() for s in allowed_schemes}
        self._clock = clock
        self._subs: Dict[str, Subscription] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pending: Set[asyncio.Task] = set()
        self._deliveries: Deque[DeliveryRecord] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def subscribe(
        self,
        principal: Principal,
        capability_ids: List[str],
        event_types: List[str],
        callback: str,
        duration_seconds: Optional[float] = None,
    ) -> Subscription:
        """
        Validate and register a subscription.

        Raises:
            InvalidSubscriptionRequest: ``invalid_callback`` for a non-encrypted
                or malformed callback, ``invalid_capabilities`` listing every
                unknown capability id, ``invalid_subscription`` for empty
                capability/event lists, unknown event types or a bad duration.
        """
        self._check_callback(callback)

        if not capability_ids:
            raise InvalidSubscriptionRequest("At least one capability is required")
        unknown = [cap_id for cap_id in dict.fromkeys(capability_ids) if not self._registry.has(cap_id)]
        if unknown:
            raise InvalidSubscriptionRequest(
                "Some requested capabilities do not exist",
                code="invalid_capabilities",
                details={"invalidCapabilities": unknown},
            )

        events = self._parse_events(event_types)
        seconds = self._check_duration(duration_seconds)

        now = self._clock()
        sub = Subscription(
            owner=principal.subject,
            capability_ids=list(dict.fromkeys(capability_ids)),
            event_types=events,
            callback=callback,
            created_at=now,
            expires_at=now + timedelta(seconds=seconds),
        )
        self._subs[sub.id] = sub
        self._locks[sub.id] = asyncio.Lock()
        logger.info(
            "Subscription %s created for subject '%s' (%d capabilities, expires %s)",
            sub.id,
            principal.subject,
            len(sub.capability_ids),
            sub.expires_at.isoformat(),
        )
        return sub.snapshot()

    def unsubscribe(self, principal: Principal, subscription_id: str) -> None:
        """Remove a subscription owned by ``principal``.

        Raises:
            SubscriptionNotFound: Unknown id or owned by another subject.
        """
        sub = self._subs.get(subscription_id)
        if sub is None or sub.owner != principal.subject:
            raise SubscriptionNotFound(subscription_id)
        self._remove(subscription_id)
        logger.info("Subscription %s removed by subject '%s'", subscription_id, principal.subject)

    def get(self, subscription_id: str) -> Subscription:
        sub = self._subs.get(subscription_id)
        if sub is None:
            raise SubscriptionNotFound(subscription_id)
        return sub.snapshot()

    def list_for(self, principal: Principal) -> List[Subscription]:
        """Active subscriptions owned by ``principal``."""
        now = self._clock()
        return [
            sub.snapshot()
            for sub in self._subs.values()
            if sub.owner == principal.subject and sub.is_active(now)
        ]

    def is_active(self, subscription_id: str) -> bool:
        sub = self._subs.get(subscription_id)
        return sub is not None and sub.is_active(self._clock())

    def purge_expired(self) -> int:
        """Drop expired subscriptions. Returns the number removed."""
        now = self._clock()
        expired = [sub_id for sub_id, sub in self._subs.items() if not sub.is_active(now)]
        for sub_id in expired:
            self._remove(sub_id)
        if expired:
            logger.debug("Purged %d expired subscriptions", len(expired))
        return len(expired)

    @property
    def deliveries(self) -> List[DeliveryRecord]:
        """Most recent delivery outcomes, oldest first."""
        return list(self._deliveries)

    # ------------------------------------------------------------------
    # event delivery
    # ------------------------------------------------------------------

    def matching(self, event: GatewayEvent) -> List[Subscription]:
        now = self._clock()
        return [sub for sub in self._subs.values() if sub.is_active(now) and sub.matches(event)]

    def publish(self, event: GatewayEvent) -> None:
        """Schedule delivery of ``event`` to every matching active subscription."""
        targets = self.matching(event)
        if not targets:
            return
        loop = asyncio.get_running_loop()
        for sub in targets:
            task = loop.create_task(self._deliver(sub.id, sub.callback, event), name=f"aucip-webhook-{sub.id}")
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._dispatcher.aclose()

    async def _deliver(self, subscription_id: str, callback: str, event: GatewayEvent) -> None:
        record = await self._dispatcher.deliver(subscription_id, callback, event)
        self._deliveries.append(record)
        lock = self._locks.get(subscription_id)
        if lock is None:
            return
        async with lock:
            sub = self._subs.get(subscription_id)
            if sub is None:
                return
            sub.last_delivery_at = record.finished_at
            sub.last_delivery_status = record.status
            if record.status == DeliveryStatus.abandoned:
                sub.delivery_failures += 1

    # ------------------------------------------------------------------
    # validation helpers
    # ------------------------------------------------------------------

    def _check_callback(self, callback: str) -> None:
        allowed = ", ".join(sorted(self._schemes)).upper()
        try:
            parts = urlsplit(callback or "")
        except ValueError:
            parts = None
        if parts is None or parts.scheme.lower() not in self._schemes or not parts.netloc:
            raise InvalidSubscriptionRequest(f"Callback URL must use {allowed}", code="invalid_callback")

    def _parse_events(self, event_types: List[str]) -> List[EventType]:
        if not event_types:
            raise InvalidSubscriptionRequest("At least one event type is required")
        invalid = [str(e) for e in event_types if str(e) not in _EVENT_TYPES]
        if invalid:
            raise InvalidSubscriptionRequest(
                "Unknown event types",
                details={"invalidEvents": invalid, "supportedEvents": sorted(_EVENT_TYPES)},
            )
        return [_EVENT_TYPES[str(e)] for e in dict.fromkeys(event_types)]

    def _check_duration(self, duration_seconds: Optional[float]) -> float:
        if duration_seconds is None:
            return float(self._default_duration)
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)):
            raise InvalidSubscriptionRequest("Duration must be a number of seconds")
        if duration_seconds <= 0:
            raise InvalidSubscriptionRequest("Duration must be positive")
        if duration_seconds > self._max_duration:
            raise InvalidSubscriptionRequest(
                f"Duration must not exceed {self._max_duration} seconds",
                details={"maxDuration": self._max_duration},
            )
        return float(duration_seconds)

    def _remove(self, subscription_id: str) -> None:
        self._subs.pop(subscription_id, None)
        self._locks.pop(subscription_id, None)

    def __len__(self) -> int:
        return len(self._subs)
