"""Response envelopes.

Every facade response body is built here.
Timestamps are ISO-8601 UTC with a ``Z`` suffix.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..errors import GatewayError
from ..schemas.domain import Job, JobHandle, JobState, OperationOutcome, OperationStatus, Subscription, SyncResult


def iso(ts: Optional[datetime]) -> Optional[str]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def error_envelope(err: GatewayError) -> Dict[str, Any]:
    return {"status": "error", "error": err.to_dict()}


def internal_error_envelope(error_id: str, error_type: str) -> Dict[str, Any]:
    return {
        "status": "error",
        "error": {
            "code": "internal_error",
            "message": "Internal server error",
            "details": {"error_id": error_id, "error_type": error_type},
        },
    }


def sync_envelope(res: SyncResult) -> Dict[str, Any]:
    return {
        "status": "success",
        "result": res.result,
        "meta": {"executionTime": res.execution_time, "requestId": res.request_id},
    }


def accepted_envelope(handle: JobHandle) -> Dict[str, Any]:
    return {"status": "accepted", "jobId": handle.job_id, "statusLocation": handle.status_location}


def job_envelope(job: Job) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "status": job.state.value,
        "jobId": job.id,
        "capability": job.capability_id,
        "createdAt": iso(job.created_at),
    }
    if job.state == JobState.in_progress:
        body["progress"] = job.progress
        body["startedAt"] = iso(job.started_at)
    elif job.state == JobState.completed:
        body["progress"] = job.progress
        body["result"] = job.result
    elif job.state == JobState.failed and job.error is not None:
        body["error"] = job.error.model_dump()
    if job.completed_at is not None:
        body["completedAt"] = iso(job.completed_at)
    return body


def outcome_wire(outcome: OperationOutcome) -> Dict[str, Any]:
    if outcome.status == OperationStatus.accepted:
        return {
            "status": "accepted",
            "capability": outcome.capability,
            "jobId": outcome.job_id,
            "statusLocation": outcome.status_location,
        }
    if outcome.status == OperationStatus.error:
        return {"status": "error", "capability": outcome.capability, "error": outcome.error}
    return {"status": "success", "capability": outcome.capability, "result": outcome.result}


def batch_envelope(outcomes: Iterable[OperationOutcome]) -> Dict[str, Any]:
    return {"status": "success", "results": [outcome_wire(o) for o in outcomes]}


def batch_failed_envelope(err: GatewayError, outcomes: List[OperationOutcome]) -> Dict[str, Any]:
    body = error_envelope(err)
    body["results"] = [outcome_wire(o) for o in outcomes]
    return body


def subscription_envelope(sub: Subscription) -> Dict[str, Any]:
    return {"subscriptionId": sub.id, "expiresAt": iso(sub.expires_at), "status": "active"}


def unsubscribed_envelope(subscription_id: str) -> Dict[str, Any]:
    return {"subscriptionId": subscription_id, "status": "cancelled"}
