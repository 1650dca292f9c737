"""End-to-end tests of the transport-neutral protocol facade.

The gateway is wired with the demo capabilities (``file.read``,
``file.write``, ``image.process``), static tokens for ``user123`` and
``user456`` and a mocked webhook endpoint.
"""

from __future__ import annotations

import json
import logging
from typing import List

import httpx
import pytest

from aucip_gateway import AucipGateway, ProtocolResponse
from aucip_gateway.core.config import Settings
from aucip_gateway.errors import RegistryFrozenError
from aucip_gateway.schemas import CapabilityDescriptor

USER123 = "Bearer token-user123"
USER456 = "Bearer token-user456"
CALLBACK = "https://mock-hooks.test/aucip"


class _Hook:
    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200)

    def bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def hook() -> _Hook:
    return _Hook()


@pytest.fixture
def gateway(registry, authenticator, permission_provider, hook) -> AucipGateway:
    settings = Settings(webhook_backoff_initial=0.0, webhook_backoff_max=0.0, webhook_max_attempts=2)
    client = httpx.AsyncClient(transport=httpx.MockTransport(hook))
    return AucipGateway(registry, authenticator, permission_provider, settings=settings, http_client=client)


def _error(resp: ProtocolResponse) -> dict:
    assert resp.body["status"] == "error"
    return resp.body["error"]


# ----------------------------------------------------------------------
# discovery
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_discover_lists_catalog_and_metadata(gateway) -> None:
    resp = await gateway.discover()

    assert resp.status_code == 200
    caps = resp.body["capabilities"]
    assert [c["id"] for c in caps] == ["file.read", "file.write", "image.process"]
    assert [c["async"] for c in caps] == [False, False, True]
    assert caps[0]["permissions"] == ["file.read"]
    assert caps[0]["parameters"]["required"] == ["path"]
    assert resp.body["metadata"] == {"app_name": "AUCIP Gateway", "app_version": "1.0.0", "aucip_version": "0.2"}


def test_registry_frozen_once_gateway_is_built(gateway) -> None:
    with pytest.raises(RegistryFrozenError):
        gateway.registry.register(CapabilityDescriptor(id="late.cap", name="Late"), lambda ctx, params: None)


# ----------------------------------------------------------------------
# execute
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_execute_sync_capability(gateway) -> None:
    resp = await gateway.execute(
        USER123, "file.read", {"parameters": {"path": "/tmp/x"}, "context": {"requestId": "req-42"}}
    )

    assert resp.status_code == 200
    assert resp.body["status"] == "success"
    assert resp.body["result"] == {"content": "This is the content of /tmp/x", "size": 512}
    assert resp.body["meta"]["requestId"] == "req-42"
    assert resp.body["meta"]["executionTime"] >= 0


@pytest.mark.asyncio
async def test_execute_requires_authentication(gateway) -> None:
    resp = await gateway.execute(None, "file.read", {"parameters": {"path": "/tmp/x"}})
    assert resp.status_code == 401
    assert _error(resp)["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_execute_rejects_unknown_token(gateway) -> None:
    resp = await gateway.execute("Bearer forged", "file.read", {"parameters": {"path": "/tmp/x"}})
    assert resp.status_code == 403
    assert _error(resp)["code"] == "invalid_token"


@pytest.mark.asyncio
async def test_execute_unknown_capability(gateway) -> None:
    resp = await gateway.execute(USER123, "file.delete", {"parameters": {}})
    assert resp.status_code == 404
    assert _error(resp) == {"code": "capability_not_found", "message": "Capability 'file.delete' not found"}


@pytest.mark.asyncio
async def test_execute_permission_denied(gateway) -> None:
    resp = await gateway.execute(USER456, "file.write", {"parameters": {"path": "/a", "content": "x"}})
    assert resp.status_code == 403
    err = _error(resp)
    assert err["code"] == "permission_denied"
    assert err["details"] == {"missingPermissions": ["file.write"]}


@pytest.mark.asyncio
async def test_execute_invalid_parameters(gateway) -> None:
    resp = await gateway.execute(USER123, "file.read", {"parameters": {}})
    assert resp.status_code == 400
    err = _error(resp)
    assert err["code"] == "invalid_parameters"
    assert err["message"] == "Missing required parameter: path"
    assert err["details"] == {"field": "path"}


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"parameters": "path=/tmp/x"}, ["not", "an", "object"]])
async def test_execute_malformed_payload(gateway, payload) -> None:
    resp = await gateway.execute(USER123, "file.read", payload)
    assert resp.status_code == 400
    assert _error(resp)["code"] == "invalid_request"


@pytest.mark.asyncio
async def test_execute_without_body_uses_empty_parameters(gateway) -> None:
    resp = await gateway.execute(USER123, "file.read")
    assert resp.status_code == 400
    assert _error(resp)["details"] == {"field": "path"}


@pytest.mark.asyncio
async def test_execute_handler_failure(gateway) -> None:
    resp = await gateway.execute(USER123, "file.write", {"parameters": {"path": "/readonly/x", "content": "c"}})
    assert resp.status_code == 500
    assert _error(resp)["code"] == "execution_failed"


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(gateway, monkeypatch, caplog) -> None:
    async def _broken(*args, **kwargs):
        raise RuntimeError("engine exploded")

    monkeypatch.setattr(gateway.engine, "invoke", _broken)
    with caplog.at_level(logging.ERROR, logger="aucip_gateway.protocol.gateway"):
        resp = await gateway.execute(USER123, "file.read", {"parameters": {"path": "/tmp/x"}})

    assert resp.status_code == 500
    err = _error(resp)
    assert err["code"] == "internal_error"
    assert err["details"]["error_type"] == "RuntimeError"
    assert any(err["details"]["error_id"] in r.getMessage() for r in caplog.records)


# ----------------------------------------------------------------------
# async jobs
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_async_execution_and_job_status(gateway) -> None:
    resp = await gateway.execute(
        USER456, "image.process", {"parameters": {"imageId": "img-7", "operations": [{"type": "rotate"}]}}
    )

    assert resp.status_code == 202
    assert resp.body["status"] == "accepted"
    job_id = resp.body["jobId"]
    assert resp.body["statusLocation"] == f"/aucip/v1/jobs/{job_id}"

    await gateway.jobs.wait(job_id)
    first = await gateway.job_status(USER456, job_id)
    second = await gateway.job_status(USER456, job_id)

    assert first.status_code == 200
    assert first.body == second.body
    assert first.body["status"] == "completed"
    assert first.body["jobId"] == job_id
    assert first.body["capability"] == "image.process"
    assert first.body["progress"] == 100
    assert first.body["result"]["outputUrl"].endswith("img-7.png")
    assert first.body["completedAt"].endswith("Z")
    assert first.body["createdAt"].endswith("Z")


@pytest.mark.asyncio
async def test_failed_job_status_carries_error(gateway) -> None:
    resp = await gateway.execute(USER456, "image.process", {"parameters": {"imageId": "broken", "operations": []}})
    await gateway.jobs.wait(resp.body["jobId"])

    status = await gateway.job_status(USER456, resp.body["jobId"])
    assert status.body["status"] == "failed"
    assert status.body["error"] == {"code": "execution_failed", "message": "cannot decode image"}
    assert "result" not in status.body


@pytest.mark.asyncio
async def test_job_status_hidden_from_other_principals(gateway) -> None:
    resp = await gateway.execute(USER456, "image.process", {"parameters": {"imageId": "i", "operations": []}})
    await gateway.jobs.wait(resp.body["jobId"])

    other = await gateway.job_status(USER123, resp.body["jobId"])
    assert other.status_code == 404
    assert _error(other)["code"] == "job_not_found"


@pytest.mark.asyncio
async def test_unknown_job(gateway) -> None:
    resp = await gateway.job_status(USER123, "job-unknown")
    assert resp.status_code == 404


# ----------------------------------------------------------------------
# batch
# ----------------------------------------------------------------------


BATCH_OPS = [
    {"capability": "file.read", "parameters": {"path": "/a"}},
    {"capability": "file.read", "parameters": {}},
    {"capability": "file.read", "parameters": {"path": "/c"}},
]


@pytest.mark.asyncio
async def test_best_effort_batch(gateway) -> None:
    resp = await gateway.batch(USER123, {"operations": BATCH_OPS, "atomicity": "best-effort"})

    assert resp.status_code == 200
    assert resp.body["status"] == "success"
    results = resp.body["results"]
    assert [r["status"] for r in results] == ["success", "error", "success"]
    assert results[0] == {
        "status": "success",
        "capability": "file.read",
        "result": {"content": "This is the content of /a", "size": 512},
    }
    assert results[1]["error"]["code"] == "invalid_parameters"


@pytest.mark.asyncio
async def test_all_or_nothing_batch_failure(gateway) -> None:
    resp = await gateway.batch(USER123, {"operations": BATCH_OPS, "atomicity": "all-or-nothing"})

    assert resp.status_code == 400
    err = _error(resp)
    assert err["code"] == "batch_failed"
    assert err["message"] == "Batch operation failed due to errors"
    assert err["details"] == {"failedIndex": 1}
    assert [r["status"] for r in resp.body["results"]] == ["success", "error"]


@pytest.mark.asyncio
async def test_batch_with_async_operation(gateway) -> None:
    resp = await gateway.batch(
        USER456, {"operations": [{"capability": "image.process", "parameters": {"imageId": "i", "operations": []}}]}
    )
    result = resp.body["results"][0]
    assert result["status"] == "accepted"
    assert result["statusLocation"] == f"/aucip/v1/jobs/{result['jobId']}"
    await gateway.jobs.wait(result["jobId"])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"operations": "file.read"},
        {"operations": [{"parameters": {}}]},
        {"operations": BATCH_OPS, "atomicity": "sometimes"},
    ],
)
async def test_malformed_batch_requests(gateway, payload) -> None:
    resp = await gateway.batch(USER123, payload)
    assert resp.status_code == 400
    assert _error(resp)["code"] == "invalid_request"


# ----------------------------------------------------------------------
# subscriptions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_subscribe_and_unsubscribe(gateway) -> None:
    resp = await gateway.subscribe(
        USER123, {"capabilities": ["file.read"], "events": ["capability.executed"], "callback": CALLBACK}
    )

    assert resp.status_code == 200
    assert resp.body["status"] == "active"
    assert resp.body["expiresAt"].endswith("Z")
    sub_id = resp.body["subscriptionId"]

    other = await gateway.unsubscribe(USER456, sub_id)
    assert other.status_code == 404
    assert _error(other)["code"] == "subscription_not_found"

    done = await gateway.unsubscribe(USER123, sub_id)
    assert done.status_code == 200
    assert done.body == {"subscriptionId": sub_id, "status": "cancelled"}


@pytest.mark.asyncio
async def test_subscribe_rejects_plain_http_callback(gateway) -> None:
    resp = await gateway.subscribe(
        USER123, {"capabilities": ["file.read"], "events": ["capability.executed"], "callback": "http://mock-hooks.test"}
    )
    assert resp.status_code == 400
    assert _error(resp) == {"code": "invalid_callback", "message": "Callback URL must use HTTPS"}
    assert len(gateway.subscriptions) == 0


@pytest.mark.asyncio
async def test_subscribe_rejects_unknown_capabilities(gateway) -> None:
    resp = await gateway.subscribe(USER123, {"capabilities": ["file.read", "file.delete"], "callback": CALLBACK})
    assert resp.status_code == 400
    err = _error(resp)
    assert err["code"] == "invalid_capabilities"
    assert err["details"] == {"invalidCapabilities": ["file.delete"]}


@pytest.mark.asyncio
async def test_subscribe_without_events_covers_all_event_types(gateway) -> None:
    resp = await gateway.subscribe(USER123, {"capabilities": ["file.read"], "callback": CALLBACK, "duration": 60})
    sub = gateway.subscriptions.get(resp.body["subscriptionId"])
    assert len(sub.event_types) == 7


@pytest.mark.asyncio
async def test_job_events_delivered_to_subscriber(gateway, hook) -> None:
    sub = await gateway.subscribe(
        USER456, {"capabilities": ["image.process"], "events": ["job.completed"], "callback": CALLBACK}
    )
    resp = await gateway.execute(USER456, "image.process", {"parameters": {"imageId": "i", "operations": []}})
    job_id = resp.body["jobId"]

    await gateway.jobs.wait(job_id)
    await gateway.subscriptions.drain()

    bodies = hook.bodies()
    assert len(bodies) == 1
    assert bodies[0]["subscriptionId"] == sub.body["subscriptionId"]
    assert bodies[0]["event"]["type"] == "job.completed"
    assert bodies[0]["event"]["jobId"] == job_id
    assert bodies[0]["event"]["payload"]["state"] == "completed"


@pytest.mark.asyncio
async def test_sync_execution_events_delivered(gateway, hook) -> None:
    await gateway.subscribe(
        USER123,
        {"capabilities": ["file.read", "file.write"], "events": ["capability.failed"], "callback": CALLBACK},
    )
    await gateway.execute(USER123, "file.read", {"parameters": {"path": "/ok"}})
    await gateway.execute(USER123, "file.write", {"parameters": {"path": "/readonly/x", "content": "c"}})
    await gateway.subscriptions.drain()

    events = [b["event"] for b in hook.bodies()]
    assert [(e["type"], e["capability"]) for e in events] == [("capability.failed", "file.write")]


@pytest.mark.asyncio
async def test_aclose_leaves_every_job_terminal(gateway) -> None:
    resp = await gateway.execute(USER456, "image.process", {"parameters": {"imageId": "i", "operations": []}})
    await gateway.aclose()

    status = await gateway.job_status(USER456, resp.body["jobId"])
    assert status.body["status"] in ("completed", "failed")


@pytest.mark.asyncio
@pytest.mark.parametrize("duration", [True, "60"])
async def test_subscribe_rejects_non_numeric_duration(gateway, duration) -> None:
    resp = await gateway.subscribe(
        USER123, {"capabilities": ["file.read"], "callback": CALLBACK, "duration": duration}
    )
    assert resp.status_code == 400
    assert _error(resp) == {"code": "invalid_subscription", "message": "Duration must be a number of seconds"}
    assert len(gateway.subscriptions) == 0
