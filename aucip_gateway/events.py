from __future__ import annotations

"""Event emission seam between producers and subscribers.

The execution engine and job manager emit ``GatewayEvent`` objects through
an ``EventSink``. ``publish`` must never block the emitter: sinks that do I/O
(webhook delivery) schedule it and return immediately.
"""

import logging
from typing import Iterable, List, Protocol

from .schemas.domain import GatewayEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: GatewayEvent) -> None: ...


class NullEventSink(EventSink):
    """Sink that drops every event."""

    def publish(self, event: GatewayEvent) -> None:
        return None


class EventBus(EventSink):
    """Fan an event out to several sinks.

    A failing sink is logged and skipped; the remaining sinks still receive
    the event.
    """

    def __init__(self, sinks: Iterable[EventSink] = ()) -> None:
        self._sinks: List[EventSink] = list(sinks)

    def add(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def publish(self, event: GatewayEvent) -> None:
        for sink in self._sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.error("Event sink %r failed for %s", sink, event.type.value, exc_info=True)
