from __future__ import annotations

"""Batch coordination.

``BatchCoordinator`` runs a sequence of invocations under one atomicity
policy:

- ``best_effort``: every operation is attempted. Operations run concurrently
  (bounded by ``max_concurrency``) and the outcomes keep the input order,
  one per operation. Individual failures never fail the batch.
- ``all_or_nothing``: operations run one at a time in order. The first
  failure stops the batch: later operations are not attempted and
  ``BatchFailed`` is raised with the outcomes gathered so far, the failing
  one included.

``all_or_nothing`` guarantees only that nothing runs after the first
failure. Operations that already succeeded are not rolled back; there is no
compensating-action mechanism.
"""

import asyncio
import logging
from typing import List, Union

from ..errors import BatchFailed, GatewayError
from ..runtime.engine import ExecutionEngine
from ..schemas.domain import (
    AtomicityMode,
    BatchOperation,
    BatchRequest,
    InvocationRequest,
    JobHandle,
    OperationOutcome,
    OperationStatus,
    Principal,
    SyncResult,
)

logger = logging.getLogger(__name__)


def _outcome(index: int, capability: str, res: Union[SyncResult, JobHandle]) -> OperationOutcome:
    if isinstance(res, JobHandle):
        return OperationOutcome(
            index=index,
            capability=capability,
            status=OperationStatus.accepted,
            job_id=res.job_id,
            status_location=res.status_location,
        )
    return OperationOutcome(index=index, capability=capability, status=OperationStatus.success, result=res.result)


class BatchCoordinator:
    """Fan batch operations out through the ``ExecutionEngine``."""

    def __init__(self, engine: ExecutionEngine, *, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._engine = engine
        self._max_concurrency = max_concurrency

    async def run(self, principal: Principal, batch: BatchRequest) -> List[OperationOutcome]:
        """
        Execute ``batch`` for ``principal``.

        Returns:
            One outcome per operation, in input order.

        Raises:
            BatchFailed: ``all_or_nothing`` batch hit a failing operation.
        """
        logger.info(
            "Running %s batch of %d operations for subject '%s'",
            batch.atomicity.value,
            len(batch.operations),
            principal.subject,
        )
        if batch.atomicity == AtomicityMode.all_or_nothing:
            return await self._run_all_or_nothing(principal, batch.operations)
        return await self._run_best_effort(principal, batch.operations)

    async def _attempt(self, principal: Principal, index: int, op: BatchOperation) -> OperationOutcome:
        request = InvocationRequest(capability_id=op.capability, parameters=dict(op.parameters))
        try:
            res = await self._engine.invoke(principal, request)
        except GatewayError as e:
            logger.debug("Batch operation %d (%s) failed: %s", index, op.capability, e.code)
            return OperationOutcome(
                index=index, capability=op.capability, status=OperationStatus.error, error=e.to_dict()
            )
        return _outcome(index, op.capability, res)

    async def _run_best_effort(self, principal: Principal, ops: List[BatchOperation]) -> List[OperationOutcome]:
        sem = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(index: int, op: BatchOperation) -> OperationOutcome:
            async with sem:
                return await self._attempt(principal, index, op)

        # gather preserves argument order regardless of completion order
        return list(await asyncio.gather(*(_bounded(i, op) for i, op in enumerate(ops))))

    async def _run_all_or_nothing(self, principal: Principal, ops: List[BatchOperation]) -> List[OperationOutcome]:
        outcomes: List[OperationOutcome] = []
        for index, op in enumerate(ops):
            outcome = await self._attempt(principal, index, op)
            outcomes.append(outcome)
            if not outcome.ok:
                skipped = len(ops) - index - 1
                logger.info(
                    "all_or_nothing batch stopped at operation %d (%s); %d not attempted",
                    index,
                    op.capability,
                    skipped,
                )
                raise BatchFailed(outcomes, failed_index=index)
        return outcomes
