"""Request payload models for the protocol facade.

Payloads arrive as JSON-like dicts from whatever transport binds the facade.
Unknown keys are ignored. Structural problems become ``InvalidRequest`` with
pydantic's error list as details.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidRequest
from ..schemas.domain import BatchOperation, BatchRequest, InvocationContext, InvocationRequest

P = TypeVar("P", bound="_Payload")


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExecutePayload(_Payload):
    parameters: Dict[str, Any] = Field(default_factory=dict)
    context: Optional[InvocationContext] = None

    def to_request(self, capability_id: str) -> InvocationRequest:
        return InvocationRequest(capability_id=capability_id, parameters=self.parameters, context=self.context)


class BatchOperationPayload(_Payload):
    capability: str = Field(min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class BatchPayload(_Payload):
    operations: List[BatchOperationPayload]
    atomicity: Optional[str] = None

    def to_request(self) -> BatchRequest:
        try:
            return BatchRequest(
                operations=[
                    BatchOperation(capability=op.capability, parameters=op.parameters) for op in self.operations
                ],
                atomicity=self.atomicity,
            )
        except ValidationError as e:
            raise InvalidRequest(
                "Atomicity must be 'best_effort' or 'all_or_nothing'", details={"errors": _error_list(e)}
            ) from e


class SubscribePayload(_Payload):
    capabilities: List[str] = Field(default_factory=list)
    events: Optional[List[str]] = None
    callback: str = ""
    # type-checked by SubscriptionManager after callback, capabilities and events
    duration: Optional[Any] = None


def _error_list(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def parse_payload(model: Type[P], payload: Any, *, message: str = "Malformed request body") -> P:
    """Validate ``payload`` against ``model``.

    Raises:
        InvalidRequest: The payload is not an object or does not match the model.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest(message, details={"errors": _error_list(e)}) from e
