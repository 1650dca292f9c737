from __future__ import annotations

import json
from datetime import timedelta
from typing import List

import httpx
import pytest

from aucip_gateway.errors import InvalidSubscriptionRequest, SubscriptionNotFound
from aucip_gateway.schemas import DeliveryStatus, EventType, GatewayEvent, Principal
from aucip_gateway.subscriptions import SubscriptionManager, WebhookDispatcher

CALLBACK = "https://mock-hooks.test/aucip"


class _Hook:
    """Records webhook requests and answers with a fixed status."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)

    def bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def hook() -> _Hook:
    return _Hook()


@pytest.fixture
def manager(registry, hook, clock) -> SubscriptionManager:
    dispatcher = WebhookDispatcher(
        client=httpx.AsyncClient(transport=httpx.MockTransport(hook)), max_attempts=2, sleep=_no_sleep
    )
    return SubscriptionManager(registry, dispatcher, clock=clock)


def _event(cap: str = "file.read", event_type: EventType = EventType.capability_executed) -> GatewayEvent:
    return GatewayEvent(type=event_type, capability_id=cap, payload={"requestId": "req-1"})


def test_subscribe_creates_active_subscription(manager, user123, clock) -> None:
    sub = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK)

    assert sub.id.startswith("sub-")
    assert sub.owner == "user123"
    assert sub.event_types == [EventType.capability_executed]
    assert sub.expires_at == clock.now + timedelta(seconds=3600)
    assert manager.is_active(sub.id)
    assert manager.get(sub.id) == sub


@pytest.mark.parametrize(
    "callback",
    ["http://mock-hooks.test/aucip", "ftp://mock-hooks.test", "https://", "not a url", ""],
)
def test_non_https_callback_rejected_without_state(manager, user123, callback) -> None:
    with pytest.raises(InvalidSubscriptionRequest) as exc:
        manager.subscribe(user123, ["file.read"], ["capability.executed"], callback)
    assert exc.value.code == "invalid_callback"
    assert exc.value.status_code == 400
    assert len(manager) == 0


def test_callback_checked_before_capabilities(manager, user123) -> None:
    with pytest.raises(InvalidSubscriptionRequest) as exc:
        manager.subscribe(user123, ["nope"], ["capability.executed"], "http://mock-hooks.test")
    assert exc.value.code == "invalid_callback"


def test_unknown_capabilities_all_listed(manager, user123) -> None:
    with pytest.raises(InvalidSubscriptionRequest) as exc:
        manager.subscribe(user123, ["file.read", "file.delete", "db.drop"], ["capability.executed"], CALLBACK)
    assert exc.value.code == "invalid_capabilities"
    assert exc.value.details == {"invalidCapabilities": ["file.delete", "db.drop"]}
    assert len(manager) == 0


@pytest.mark.parametrize(
    "caps, events, duration",
    [
        ([], ["capability.executed"], None),
        (["file.read"], [], None),
        (["file.read"], ["file.exploded"], None),
        (["file.read"], ["capability.executed"], 0),
        (["file.read"], ["capability.executed"], -5),
        (["file.read"], ["capability.executed"], 30 * 86400 + 1),
        (["file.read"], ["capability.executed"], True),
    ],
)
def test_invalid_subscription_requests(manager, user123, caps, events, duration) -> None:
    with pytest.raises(InvalidSubscriptionRequest) as exc:
        manager.subscribe(user123, caps, events, CALLBACK, duration)
    assert exc.value.code == "invalid_subscription"
    assert len(manager) == 0


def test_subscription_expires_after_duration(manager, user123, clock) -> None:
    sub = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK, duration_seconds=1)
    assert manager.is_active(sub.id)
    assert manager.matching(_event()) != []

    clock.advance(1)
    assert manager.is_active(sub.id) is False
    assert manager.matching(_event()) == []
    assert manager.list_for(user123) == []
    assert manager.purge_expired() == 1
    assert len(manager) == 0


def test_unsubscribe_only_by_owner(manager, user123, user456) -> None:
    sub = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK)

    with pytest.raises(SubscriptionNotFound):
        manager.unsubscribe(user456, sub.id)
    manager.unsubscribe(user123, sub.id)
    with pytest.raises(SubscriptionNotFound):
        manager.get(sub.id)
    with pytest.raises(SubscriptionNotFound):
        manager.unsubscribe(user123, sub.id)


def test_list_for_returns_only_own_subscriptions(manager, user123, user456) -> None:
    mine = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK)
    manager.subscribe(user456, ["file.read"], ["capability.executed"], CALLBACK)
    assert [s.id for s in manager.list_for(user123)] == [mine.id]


def test_matching_by_capability_and_event_type(manager, user123) -> None:
    sub = manager.subscribe(user123, ["file.read", "image.process"], ["job.completed"], CALLBACK)

    assert [s.id for s in manager.matching(_event("image.process", EventType.job_completed))] == [sub.id]
    assert manager.matching(_event("image.process", EventType.job_failed)) == []
    assert manager.matching(_event("file.write", EventType.job_completed)) == []


def test_publish_without_matches_is_a_noop(manager) -> None:
    manager.publish(_event())
    assert manager.deliveries == []


@pytest.mark.asyncio
async def test_publish_delivers_to_matching_subscriptions(manager, hook, user123, user456) -> None:
    read_sub = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK)
    manager.subscribe(user456, ["file.write"], ["capability.executed"], CALLBACK)

    event = _event()
    manager.publish(event)
    await manager.drain()

    assert [b["subscriptionId"] for b in hook.bodies()] == [read_sub.id]
    assert hook.bodies()[0]["event"]["id"] == event.id
    refreshed = manager.get(read_sub.id)
    assert refreshed.last_delivery_status == DeliveryStatus.delivered
    assert refreshed.last_delivery_at is not None
    assert refreshed.delivery_failures == 0
    assert [r.status for r in manager.deliveries] == [DeliveryStatus.delivered]


@pytest.mark.asyncio
async def test_abandoned_delivery_updates_bookkeeping_only(manager, hook, user123) -> None:
    hook.status_code = 503
    sub = manager.subscribe(user123, ["file.read"], ["capability.executed"], CALLBACK)

    manager.publish(_event())
    await manager.drain()

    refreshed = manager.get(sub.id)
    assert len(hook.requests) == 2
    assert refreshed.last_delivery_status == DeliveryStatus.abandoned
    assert refreshed.delivery_failures == 1
    assert manager.is_active(sub.id)


@pytest.mark.asyncio
async def test_subscriptions_are_independent_per_principal(registry, clock) -> None:
    hook = _Hook()
    dispatcher = WebhookDispatcher(client=httpx.AsyncClient(transport=httpx.MockTransport(hook)), sleep=_no_sleep)
    manager = SubscriptionManager(registry, dispatcher, clock=clock, default_duration_seconds=60)

    a = manager.subscribe(Principal(subject="a"), ["file.read"], ["capability.executed"], CALLBACK + "/a")
    b = manager.subscribe(Principal(subject="b"), ["file.read"], ["capability.executed"], CALLBACK + "/b")
    assert a.expires_at == clock.now + timedelta(seconds=60)

    manager.publish(_event())
    await manager.aclose()
    assert sorted(str(r.url) for r in hook.requests) == [CALLBACK + "/a", CALLBACK + "/b"]
    assert {b_["subscriptionId"] for b_ in hook.bodies()} == {a.id, b.id}
