"""Error types raised by the gateway core.

Purpose:
- Give every protocol-visible failure a stable machine-readable ``code``, a
  human-readable message and, where useful, structured ``details`` so callers
  can self-correct without a server-side stack trace.
- Carry the transport status code a binding should answer with.

Usage:
- Catch ``GatewayError`` for any protocol failure and render ``to_dict()``.
- Programming errors (duplicate registration, illegal job transitions) are
  plain ``ValueError``/``RuntimeError`` subclasses and never reach callers.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence


class GatewayError(Exception):
    """Base error for protocol failures.

    Args:
        message: Human-readable error description.
        details: Optional structured payload (missing permissions, field names, ...).
    """

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class Unauthenticated(GatewayError):
    code = "unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class InvalidCredential(GatewayError):
    code = "invalid_token"
    status_code = 403

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(message)


class CapabilityNotFound(GatewayError):
    code = "capability_not_found"
    status_code = 404

    def __init__(self, capability_id: str) -> None:
        super().__init__(f"Capability '{capability_id}' not found")
        self.capability_id = capability_id


class PermissionDenied(GatewayError):
    code = "permission_denied"
    status_code = 403

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__("Missing required permissions", details={"missingPermissions": list(missing)})
        self.missing = list(missing)


class InvalidParameters(GatewayError):
    code = "invalid_parameters"
    status_code = 400

    def __init__(self, field: Optional[str], reason: str) -> None:
        details = {"field": field} if field is not None else None
        super().__init__(reason, details=details)
        self.field = field
        self.reason = reason


class InvalidRequest(GatewayError):
    code = "invalid_request"
    status_code = 400


class ExecutionFailed(GatewayError):
    code = "execution_failed"
    status_code = 500


class BatchFailed(GatewayError):
    """First failure of an ``all_or_nothing`` batch, promoted to the envelope.

    ``partial_results`` holds every outcome gathered up to and including the
    failing operation. Operations applied before the failure are not rolled back.
    """

    code = "batch_failed"
    status_code = 400

    def __init__(self, partial_results: Iterable[Any], *, failed_index: int) -> None:
        super().__init__(
            "Batch operation failed due to errors",
            details={"failedIndex": failed_index},
        )
        self.partial_results: List[Any] = list(partial_results)
        self.failed_index = failed_index


class InvalidSubscriptionRequest(GatewayError):
    status_code = 400

    def __init__(self, reason: str, *, code: str = "invalid_subscription", details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, details=details)
        self.code = code
        self.reason = reason


class SubscriptionNotFound(GatewayError):
    code = "subscription_not_found"
    status_code = 404

    def __init__(self, subscription_id: str) -> None:
        super().__init__(f"Subscription '{subscription_id}' not found")
        self.subscription_id = subscription_id


class JobNotFound(GatewayError):
    code = "job_not_found"
    status_code = 404

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' not found")
        self.job_id = job_id


class JobTimeout(GatewayError):
    """Recorded on a job whose handler exceeded the configured maximum runtime."""

    code = "timeout"
    status_code = 504

    def __init__(self, job_id: str, timeout_seconds: float) -> None:
        super().__init__(f"Job '{job_id}' exceeded maximum runtime of {timeout_seconds}s")
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds


class DuplicateCapabilityError(ValueError):
    def __init__(self, capability_id: str) -> None:
        super().__init__(f"capability already registered: {capability_id}")
        self.capability_id = capability_id


class RegistryFrozenError(RuntimeError):
    pass


class InvalidJobTransition(RuntimeError):
    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"illegal job transition for {job_id}: {current} -> {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested
