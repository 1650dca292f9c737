from __future__ import annotations

"""Asynchronous job lifecycle.

``JobManager`` exclusively owns ``Job`` entries. A job moves through

    pending -> in_progress -> {completed | failed}

and never leaves a terminal state. Only the execution driver (``submit`` /
``_drive``) and the progress reporter handed to handlers mutate jobs, via
``advance``; ``status`` is a read that returns a snapshot.

Concurrency
-----------

- Each job has its own ``asyncio.Lock``; reads and writes of one job are
  mutually exclusive, operations on different jobs never contend.
- Each job runs on its own ``asyncio`` task, decoupled from the request that
  created it, and is bounded by ``timeout_seconds``. A job still running at
  the deadline is failed with a ``timeout`` error.

Retention
---------

Terminal jobs remain queryable for ``retention_seconds`` after
``completed_at``. Afterwards they are evicted lazily and lookups raise
``JobNotFound``.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from ..capabilities.base import Capability, HandlerContext
from ..errors import GatewayError, InvalidJobTransition, JobNotFound, JobTimeout
from ..events import EventSink, NullEventSink
from ..schemas.domain import EventType, GatewayEvent, Job, JobError, JobState, Principal

logger = logging.getLogger(__name__)

_ALLOWED = {
    JobState.pending: {JobState.in_progress},
    JobState.in_progress: {JobState.completed, JobState.failed},
    JobState.completed: set(),
    JobState.failed: set(),
}

_STATE_EVENTS = {
    JobState.in_progress: EventType.job_started,
    JobState.completed: EventType.job_completed,
    JobState.failed: EventType.job_failed,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobManager:
    """Own and drive asynchronous capability jobs."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 300.0,
        retention_seconds: float = 3600.0,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Initialize the JobManager.

        Args:
            timeout_seconds: Maximum runtime of a job handler.
            retention_seconds: How long terminal jobs stay queryable.
            events: Sink receiving job lifecycle events.
            clock: Source of timezone-aware "now" timestamps.
        """
        self._timeout = timeout_seconds
        self._retention = timedelta(seconds=retention_seconds)
        self._events = events or NullEventSink()
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def create(self, capability_id: str, *, owner: Optional[str] = None, request_id: Optional[str] = None) -> Job:
        """Create a ``pending`` job and return a snapshot of it."""
        self.purge_expired()
        job = Job(capability_id=capability_id, owner=owner, request_id=request_id, created_at=self._clock())
        self._jobs[job.id] = job
        self._locks[job.id] = asyncio.Lock()
        logger.debug("Created job %s for %s", job.id, capability_id)
        self._emit(EventType.job_created, job)
        return job.snapshot()

    def submit(
        self,
        capability: Capability,
        *,
        principal: Principal,
        params: Dict[str, Any],
        request_id: str,
    ) -> Job:
        """Create a job and schedule its execution driver.

        Returns immediately; the handler runs on a separate task.
        """
        job = self.create(capability.id, owner=principal.subject, request_id=request_id)
        task = asyncio.get_running_loop().create_task(
            self._drive(job.id, capability, principal=principal, params=params, request_id=request_id),
            name=f"aucip-job-{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._tasks.pop(job_id, None))
        return job

    async def status(self, job_id: str, *, owner: Optional[str] = None) -> Job:
        """
        Return a snapshot of a job.

        Args:
            job_id: The job identifier.
            owner: When given, jobs owned by another subject are reported as not found.

        Raises:
            JobNotFound: Unknown, evicted, or not visible to ``owner``.
        """
        lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFound(job_id)
        async with lock:
            job = self._jobs.get(job_id)
            if job is None or self._expired(job):
                self._evict(job_id)
                raise JobNotFound(job_id)
            if owner is not None and job.owner != owner:
                raise JobNotFound(job_id)
            return job.snapshot()

    async def advance(
        self,
        job_id: str,
        *,
        state: Optional[JobState] = None,
        progress: Optional[int] = None,
        result: Any = None,
        error: Optional[JobError] = None,
    ) -> Job:
        """
        Apply a state transition and/or progress update (driver-internal).

        Progress is clamped to [0, 100] and never decreases; it may only be
        reported while the job is ``in_progress``.

        Raises:
            JobNotFound: If the job does not exist.
            InvalidJobTransition: For transitions the state machine forbids.
        """
        lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFound(job_id)
        async with lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)

            emitted: list[EventType] = []
            if state is not None and state != job.state:
                if state not in _ALLOWED[job.state]:
                    raise InvalidJobTransition(job_id, job.state.value, state.value)
                now = self._clock()
                job.state = state
                if state == JobState.in_progress:
                    job.started_at = now
                elif state == JobState.completed:
                    job.result = result
                    job.progress = 100
                    job.completed_at = now
                elif state == JobState.failed:
                    job.error = error or JobError(code="execution_failed", message="job failed")
                    job.completed_at = now
                emitted.append(_STATE_EVENTS[state])

            if progress is not None:
                if job.state != JobState.in_progress:
                    raise InvalidJobTransition(job_id, job.state.value, "progress")
                value = max(0, min(100, int(progress)))
                if value > job.progress:
                    job.progress = value
                    emitted.append(EventType.job_progress)

            snapshot = job.snapshot()

        for event_type in emitted:
            self._emit(event_type, snapshot)
        return snapshot

    async def wait(self, job_id: str) -> Job:
        """Wait for a job's driver to finish and return the final snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job.snapshot()

    def purge_expired(self) -> int:
        """Evict terminal jobs past the retention window. Returns the number evicted."""
        expired = [job_id for job_id, job in self._jobs.items() if self._expired(job)]
        for job_id in expired:
            self._evict(job_id)
        if expired:
            logger.debug("Evicted %d expired jobs", len(expired))
        return len(expired)

    async def shutdown(self) -> None:
        """Cancel running drivers; their jobs are failed with a ``cancelled`` error."""
        pending_ids = list(self._tasks)
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        # drivers cancelled before their first step never moved the job
        cancelled = JobError(code="cancelled", message="Job cancelled by gateway")
        for job_id in pending_ids:
            job = self._jobs.get(job_id)
            if job is None or job.state.terminal:
                continue
            if job.state == JobState.pending:
                await self.advance(job_id, state=JobState.in_progress)
            await self.advance(job_id, state=JobState.failed, error=cancelled)

    def __len__(self) -> int:
        return len(self._jobs)

    async def _drive(
        self,
        job_id: str,
        capability: Capability,
        *,
        principal: Principal,
        params: Dict[str, Any],
        request_id: str,
    ) -> None:
        """Execution driver: run the handler and record exactly one terminal transition."""
        await self.advance(job_id, state=JobState.in_progress)

        async def _report(percent: int) -> None:
            await self.advance(job_id, progress=percent)

        ctx = HandlerContext(
            principal=principal,
            capability=capability.descriptor,
            request_id=request_id,
            job_id=job_id,
            progress=_report,
        )
        cancelled = JobError(code="cancelled", message="Job cancelled by gateway")
        handler = asyncio.ensure_future(capability.handler.execute(ctx, params=params))
        try:
            done, _ = await asyncio.wait({handler}, timeout=self._timeout)
        except asyncio.CancelledError:
            handler.cancel()
            logger.info("Job %s (%s) cancelled", job_id, capability.id)
            await self.advance(job_id, state=JobState.failed, error=cancelled)
            raise

        if not done:
            # only the deadline yields a timeout; a handler's own TimeoutError is an ordinary failure
            handler.cancel()
            err = JobTimeout(job_id, self._timeout)
            logger.warning("Job %s (%s) timed out after %ss", job_id, capability.id, self._timeout)
            await self.advance(job_id, state=JobState.failed, error=JobError(code=err.code, message=err.message))
            return

        try:
            result = handler.result()
        except asyncio.CancelledError:
            logger.info("Job %s (%s) handler cancelled itself", job_id, capability.id)
            await self.advance(job_id, state=JobState.failed, error=cancelled)
        except GatewayError as e:
            logger.info("Job %s (%s) failed: %s", job_id, capability.id, e.message)
            await self.advance(job_id, state=JobState.failed, error=JobError(code=e.code, message=e.message))
        except Exception as e:
            logger.warning("Job %s (%s) handler raised", job_id, capability.id, exc_info=True)
            await self.advance(
                job_id,
                state=JobState.failed,
                error=JobError(code="execution_failed", message=str(e) or type(e).__name__),
            )
        else:
            await self.advance(job_id, state=JobState.completed, result=result)
            logger.debug("Job %s (%s) completed", job_id, capability.id)

    def _expired(self, job: Job) -> bool:
        if not job.state.terminal or job.completed_at is None:
            return False
        return self._clock() - job.completed_at >= self._retention

    def _evict(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._locks.pop(job_id, None)

    def _emit(self, event_type: EventType, job: Job) -> None:
        payload: Dict[str, Any] = {"state": job.state.value, "progress": job.progress}
        if job.state == JobState.completed:
            payload["result"] = job.result
        if job.error is not None:
            payload["error"] = job.error.model_dump()
        self._events.publish(
            GatewayEvent(
                type=event_type,
                capability_id=job.capability_id,
                job_id=job.id,
                occurred_at=self._clock(),
                payload=payload,
            )
        )
