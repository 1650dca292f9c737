from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable

import httpx
import pytest

from aucip_gateway.auth import Authorizer, StaticPermissionProvider, StaticTokenAuthenticator
from aucip_gateway.capabilities import CapabilityRegistry, HandlerContext
from aucip_gateway.schemas import CapabilityDescriptor, Principal

USER_PERMISSIONS: Dict[str, list[str]] = {
    "user123": ["file.read", "file.write"],
    "user456": ["file.read", "media.edit"],
}

TOKENS: Dict[str, str] = {
    "token-user123": "user123",
    "token-user456": "user456",
}

FILE_READ = CapabilityDescriptor(
    id="file.read",
    name="Read File",
    description="Reads the content of a file",
    version="1.0",
    permissions=["file.read"],
    parameters={
        "type": "object",
        "properties": {"path": {"type": "string", "description": "File path"}},
        "required": ["path"],
    },
    returns={"type": "object", "properties": {"content": {"type": "string"}, "size": {"type": "number"}}},
)

FILE_WRITE = CapabilityDescriptor(
    id="file.write",
    name="Write File",
    description="Writes content to a file",
    version="1.0",
    permissions=["file.write"],
    parameters={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path"},
            "content": {"type": "string", "description": "File content"},
            "overwrite": {"type": "boolean", "default": False},
        },
        "required": ["path", "content"],
    },
    returns={"type": "object", "properties": {"success": {"type": "boolean"}, "fileId": {"type": "string"}}},
)

IMAGE_PROCESS = CapabilityDescriptor(
    id="image.process",
    name="Process Image",
    description="Applies filters and transformations to an image",
    version="1.0",
    permissions=["media.edit"],
    mode="async",
    parameters={
        "type": "object",
        "properties": {
            "imageId": {"type": "string", "description": "ID of the image to process"},
            "operations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "type": {"type": "string", "enum": ["resize", "crop", "rotate", "filter"]},
                        "params": {"type": "object"},
                    },
                },
            },
        },
        "required": ["imageId", "operations"],
    },
)


async def read_file(ctx: HandlerContext, params: Dict[str, Any]) -> Dict[str, Any]:
    return {"content": f"This is the content of {params['path']}", "size": 512}


def write_file(ctx: HandlerContext, params: Dict[str, Any]) -> Dict[str, Any]:
    if params["path"].startswith("/readonly/"):
        raise PermissionError(f"read-only location: {params['path']}")
    return {"success": True, "fileId": f"file-{len(params['content'])}"}


async def process_image(ctx: HandlerContext, params: Dict[str, Any]) -> Dict[str, Any]:
    steps = params["operations"] or [{"type": "noop"}]
    for idx, _ in enumerate(steps, start=1):
        await asyncio.sleep(0)
        await ctx.report_progress(int(idx * 100 / (len(steps) + 1)))
    if params["imageId"] == "broken":
        raise ValueError("cannot decode image")
    return {"success": True, "outputUrl": f"https://mock-cdn.test/results/{params['imageId']}.png"}


def build_registry() -> CapabilityRegistry:
    reg = CapabilityRegistry()
    reg.register(FILE_READ, read_file)
    reg.register(FILE_WRITE, write_file)
    reg.register(IMAGE_PROCESS, process_image)
    return reg


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def registry() -> CapabilityRegistry:
    return build_registry()


@pytest.fixture
def make_registry():
    return build_registry


@pytest.fixture
def permission_provider() -> StaticPermissionProvider:
    return StaticPermissionProvider.from_mapping(USER_PERMISSIONS)


@pytest.fixture
def authorizer(permission_provider: StaticPermissionProvider) -> Authorizer:
    return Authorizer(permission_provider)


@pytest.fixture
def authenticator() -> StaticTokenAuthenticator:
    return StaticTokenAuthenticator(tokens=TOKENS)


@pytest.fixture
def user123() -> Principal:
    return Principal(subject="user123")


@pytest.fixture
def user456() -> Principal:
    return Principal(subject="user456")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "/",
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)
