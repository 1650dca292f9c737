from __future__ import annotations

"""Runtime dependency bundle.

``EngineDeps`` collects the registry, authorization, validation, job
tracking and event sink the execution engine needs.
"""

from dataclasses import dataclass, field

from ..auth.authorizer import Authorizer
from ..capabilities.registry import CapabilityRegistry
from ..events import EventSink, NullEventSink
from ..jobs.manager import JobManager
from ..validation.validator import SchemaValidator


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``ExecutionEngine``.

    This object is typically constructed by the protocol facade and passed
    into the engine. It holds:

    - the capability registry used to resolve requests,
    - the authorizer and schema validator used by the check pipeline,
    - the job manager owning asynchronous executions,
    - the event sink receiving execution events.
    """

    registry: CapabilityRegistry
    authorizer: Authorizer
    validator: SchemaValidator
    jobs: JobManager
    events: EventSink = field(default_factory=NullEventSink)
