from __future__ import annotations

"""Execution engine.

``ExecutionEngine`` dispatches a validated, authorized invocation to the
capability handler.

Execution model
--------------

1. Run the check pipeline: resolve the capability from the registry,
   authorize the principal, validate the parameters. The first failing check
   is raised as-is (``CapabilityNotFound``, ``PermissionDenied``,
   ``InvalidParameters``).
2. Branch on the capability mode:

   - ``sync``: await the handler inline. Any handler exception is converted
     to ``ExecutionFailed``; the caller never sees an unhandled fault.
   - ``async``: hand the invocation to the ``JobManager`` and return a
     ``JobHandle`` immediately, without waiting on the handler.
"""

import logging
import time
from typing import Optional, Union

from ..capabilities.base import Capability, HandlerContext
from ..errors import ExecutionFailed
from ..schemas.domain import (
    EventType,
    GatewayEvent,
    InvocationRequest,
    JobHandle,
    Principal,
    SyncResult,
    new_id,
)
from .models import EngineDeps
from .pipeline import CheckPipeline, InvocationState, default_pipeline

logger = logging.getLogger(__name__)


class ExecutionEngine:
    """Validate, authorize and dispatch capability invocations.

    Delegates checks to the pipeline, job lifecycle to the ``JobManager`` and
    actual work to the handlers registered in ``EngineDeps.registry``.
    """

    def __init__(
        self,
        *,
        deps: EngineDeps,
        status_prefix: str = "/aucip/v1",
        pipeline: Optional[CheckPipeline] = None,
    ) -> None:
        """
        Initialize the ExecutionEngine.

        Args:
            deps: The runtime dependencies (registry, authorizer, validator, jobs, events).
            status_prefix: Path prefix used to build job status locations.
            pipeline: Custom check pipeline; defaults to resolve -> authorize -> validate.
        """
        self._deps = deps
        self._status_prefix = status_prefix.rstrip("/")
        self._pipeline = pipeline or default_pipeline(deps.registry, deps.authorizer, deps.validator)

    @property
    def deps(self) -> EngineDeps:
        return self._deps

    def status_location(self, job_id: str) -> str:
        return f"{self._status_prefix}/jobs/{job_id}"

    async def invoke(self, principal: Principal, request: InvocationRequest) -> Union[SyncResult, JobHandle]:
        """
        Invoke a capability on behalf of ``principal``.

        Returns:
            ``SyncResult`` for sync capabilities, ``JobHandle`` for async ones.

        Raises:
            CapabilityNotFound: Unknown capability id.
            PermissionDenied: The principal lacks required permissions.
            InvalidParameters: Parameters do not satisfy the capability schema.
            ExecutionFailed: A sync handler raised.
        """
        state = InvocationState(principal=principal, request=request)
        err = self._pipeline.run(state)
        if err is not None:
            raise err
        cap = state.capability
        assert cap is not None

        request_id = request.request_id or new_id("req")
        if cap.descriptor.is_async:
            job = self._deps.jobs.submit(
                cap, principal=principal, params=dict(request.parameters), request_id=request_id
            )
            logger.info("Accepted async %s as job %s (request %s)", cap.id, job.id, request_id)
            return JobHandle(job_id=job.id, status_location=self.status_location(job.id), capability_id=cap.id)

        return await self._execute_inline(cap, principal=principal, request=request, request_id=request_id)

    async def _execute_inline(
        self,
        cap: Capability,
        *,
        principal: Principal,
        request: InvocationRequest,
        request_id: str,
    ) -> SyncResult:
        ctx = HandlerContext(principal=principal, capability=cap.descriptor, request_id=request_id)
        started = time.perf_counter()
        try:
            result = await cap.handler.execute(ctx, params=dict(request.parameters))
        except Exception as e:
            elapsed = time.perf_counter() - started
            message = str(e) or type(e).__name__
            logger.warning("Capability %s failed (request %s): %s", cap.id, request_id, message, exc_info=True)
            self._emit(
                EventType.capability_failed,
                cap.id,
                {"requestId": request_id, "executionTime": elapsed, "error": message},
            )
            raise ExecutionFailed(message) from e

        elapsed = time.perf_counter() - started
        logger.debug("Capability %s executed in %.4fs (request %s)", cap.id, elapsed, request_id)
        self._emit(EventType.capability_executed, cap.id, {"requestId": request_id, "executionTime": elapsed})
        return SyncResult(result=result, execution_time=elapsed, request_id=request_id, capability_id=cap.id)

    def _emit(self, event_type: EventType, capability_id: str, payload: dict) -> None:
        self._deps.events.publish(GatewayEvent(type=event_type, capability_id=capability_id, payload=payload))
