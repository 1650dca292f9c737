from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field, field_validator

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


class ExecutionMode(str, Enum):
    sync = "sync"
    async_ = "async"


class JobState(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobState.completed, JobState.failed)


class AtomicityMode(str, Enum):
    best_effort = "best_effort"
    all_or_nothing = "all_or_nothing"


class OperationStatus(str, Enum):
    success = "success"
    accepted = "accepted"
    error = "error"


class EventType(str, Enum):
    capability_executed = "capability.executed"
    capability_failed = "capability.failed"
    job_created = "job.created"
    job_started = "job.started"
    job_progress = "job.progress"
    job_completed = "job.completed"
    job_failed = "job.failed"


class DeliveryStatus(str, Enum):
    delivered = "delivered"
    abandoned = "abandoned"


class CapabilityDescriptor(BaseSchema):
    """Immutable, discoverable description of a capability.

    ``permissions`` keeps the declared order so that denial diagnostics are
    reported deterministically; duplicates are dropped.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    version: str = "1.0"
    permissions: tuple[str, ...] = ()
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    returns: Optional[Dict[str, Any]] = None
    mode: ExecutionMode = ExecutionMode.sync

    @field_validator("permissions", mode="before")
    @classmethod
    def _dedupe_permissions(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return tuple(dict.fromkeys(value))

    @property
    def is_async(self) -> bool:
        return self.mode == ExecutionMode.async_

    @property
    def required_permissions(self) -> frozenset[str]:
        return frozenset(self.permissions)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "CapabilityDescriptor":
        """Build a descriptor from its discovery form (``async: true`` instead of ``mode``)."""
        payload = dict(data)
        is_async = payload.pop("async", None)
        if is_async is not None and "mode" not in payload:
            payload["mode"] = ExecutionMode.async_ if is_async else ExecutionMode.sync
        return cls.model_validate(payload)

    def to_wire(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "permissions": list(self.permissions),
            "parameters": self.parameters,
        }
        if self.returns is not None:
            out["returns"] = self.returns
        out["async"] = self.is_async
        return out


class Principal(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    subject: str = Field(min_length=1)
    claims: Dict[str, Any] = Field(default_factory=dict)


class InvocationContext(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    request_id: Optional[str] = Field(default=None, alias="requestId")


class InvocationRequest(BaseSchema):
    capability_id: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    context: Optional[InvocationContext] = None

    @property
    def request_id(self) -> Optional[str]:
        return self.context.request_id if self.context is not None else None


class JobError(BaseSchema):
    code: str
    message: str


class Job(BaseSchema):
    id: str = Field(default_factory=lambda: new_id("job"))
    capability_id: str
    owner: Optional[str] = None
    request_id: Optional[str] = None

    state: JobState = JobState.pending
    progress: int = 0
    result: Optional[Any] = None
    error: Optional[JobError] = None

    created_at: datetime = Field(default_factory=_utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class BatchOperation(BaseSchema):
    capability: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseSchema):
    operations: List[BatchOperation]
    atomicity: AtomicityMode = AtomicityMode.best_effort

    @field_validator("atomicity", mode="before")
    @classmethod
    def _normalize_atomicity(cls, value: Any) -> Any:
        # the demo protocol spelled the modes with hyphens
        if value is None:
            return AtomicityMode.best_effort
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


class OperationOutcome(BaseSchema):
    index: int
    capability: str
    status: OperationStatus
    result: Optional[Any] = None
    job_id: Optional[str] = None
    status_location: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status != OperationStatus.error


class Subscription(BaseSchema):
    id: str = Field(default_factory=lambda: new_id("sub"))
    owner: str
    capability_ids: List[str]
    event_types: List[EventType]
    callback: str
    created_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime

    last_delivery_at: Optional[datetime] = None
    last_delivery_status: Optional[DeliveryStatus] = None
    delivery_failures: int = 0

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def matches(self, event: "GatewayEvent") -> bool:
        return event.capability_id in self.capability_ids and event.type in self.event_types


class GatewayEvent(BaseSchema):
    id: str = Field(default_factory=lambda: new_id("evt"))
    type: EventType
    capability_id: str
    job_id: Optional[str] = None
    occurred_at: datetime = Field(default_factory=_utc_now)
    payload: Dict[str, Any] = Field(default_factory=dict)


class DeliveryRecord(BaseSchema):
    subscription_id: str
    event_id: str
    attempts: int
    status: DeliveryStatus
    status_code: Optional[int] = None
    last_error: Optional[str] = None
    finished_at: datetime = Field(default_factory=_utc_now)


@dataclass(frozen=True)
class SyncResult:
    """Outcome of an inline capability execution."""

    result: Any
    execution_time: float
    request_id: str
    capability_id: str = ""


@dataclass(frozen=True)
class JobHandle:
    """Returned immediately for async capabilities."""

    job_id: str
    status_location: str
    capability_id: str = ""
