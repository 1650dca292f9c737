from __future__ import annotations

"""Capability handler protocol and execution context.

A capability pairs an immutable ``CapabilityDescriptor`` (what callers
discover and what the engine authorizes and validates against) with a
handler (the business logic the gateway dispatches to).

Handlers should:

- treat ``params`` as already validated against the descriptor schema,
- return a JSON-serializable result,
- raise on failure (the engine converts exceptions into structured errors),
- avoid making authorization decisions themselves.

Async-mode handlers may call ``ctx.report_progress`` to publish progress on
their job; outside a job the call is a no-op. Plain (non-coroutine) functions
run on a worker thread so a blocking handler never stalls the event loop.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from ..schemas.domain import CapabilityDescriptor, Principal

ProgressReporter = Callable[[int], Awaitable[None]]


async def _no_progress(_: int) -> None:
    return None


@dataclass(frozen=True)
class HandlerContext:
    """Execution context passed to capability handlers.

    Attributes
    ----------
    principal:
        The authenticated caller the invocation runs on behalf of.
    capability:
        The registry descriptor being executed.
    request_id:
        Correlation id echoed back to the caller.
    job_id:
        Set only when running as an asynchronous job.
    """

    principal: Principal
    capability: CapabilityDescriptor
    request_id: str
    job_id: Optional[str] = None
    progress: ProgressReporter = field(default=_no_progress, repr=False)

    async def report_progress(self, percent: int) -> None:
        await self.progress(percent)


class CapabilityHandler(Protocol):
    """Protocol for capability implementations."""

    async def execute(self, ctx: HandlerContext, *, params: Dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class FunctionHandler(CapabilityHandler):
    """Adapt a plain function (sync or async) to ``CapabilityHandler``.

    The function is called as ``fn(ctx, params)``. Coroutine functions run on
    the event loop; plain functions run on a worker thread via
    ``asyncio.to_thread`` and therefore cannot ``await ctx.report_progress``.
    """

    fn: Callable[[HandlerContext, Dict[str, Any]], Any]

    async def execute(self, ctx: HandlerContext, *, params: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(self.fn) or inspect.iscoroutinefunction(getattr(self.fn, "__call__", None)):
            return await self.fn(ctx, params)
        result = await asyncio.to_thread(self.fn, ctx, params)
        if inspect.isawaitable(result):
            result = await result
        return result


@dataclass(frozen=True)
class Capability:
    """A registered descriptor bound to its handler."""

    descriptor: CapabilityDescriptor
    handler: CapabilityHandler

    @property
    def id(self) -> str:
        return self.descriptor.id
