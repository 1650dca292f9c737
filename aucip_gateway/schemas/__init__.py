"""Schemas and DTOs for the gateway core."""

from .domain import (
    AtomicityMode,
    BatchOperation,
    BatchRequest,
    CapabilityDescriptor,
    DeliveryRecord,
    DeliveryStatus,
    EventType,
    ExecutionMode,
    GatewayEvent,
    InvocationContext,
    InvocationRequest,
    Job,
    JobError,
    JobHandle,
    JobState,
    OperationOutcome,
    OperationStatus,
    Principal,
    Subscription,
    SyncResult,
)

__all__ = [
    "AtomicityMode",
    "BatchOperation",
    "BatchRequest",
    "CapabilityDescriptor",
    "DeliveryRecord",
    "DeliveryStatus",
    "EventType",
    "ExecutionMode",
    "GatewayEvent",
    "InvocationContext",
    "InvocationRequest",
    "Job",
    "JobError",
    "JobHandle",
    "JobState",
    "OperationOutcome",
    "OperationStatus",
    "Principal",
    "Subscription",
    "SyncResult",
]
