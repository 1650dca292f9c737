"""Execution runtime for capability invocations.

 The runtime takes an ``InvocationRequest`` on behalf of a ``Principal`` and
 executes it with strong guarantees:

 - requests are resolved, authorized and validated by an ordered
   ``CheckPipeline`` before any handler runs;
 - sync capabilities run inline and return a ``SyncResult``;
 - async capabilities become jobs owned by the ``JobManager`` and return a
   ``JobHandle`` immediately.

 The main entry point is ``ExecutionEngine``.
 """

from .engine import ExecutionEngine
from .models import EngineDeps
from .pipeline import CheckPipeline, InvocationState, default_pipeline

__all__ = [
    "ExecutionEngine",
    "EngineDeps",
    "CheckPipeline",
    "InvocationState",
    "default_pipeline",
]
