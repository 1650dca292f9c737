from __future__ import annotations

"""Ordered request check pipeline.

Each check receives the ``InvocationState`` and returns ``None`` to continue
or a terminal ``GatewayError``. The engine composes

    resolve_capability -> authorize -> validate_parameters

but the pipeline is independent of any transport binding and can be
extended or reordered by wiring code.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..auth.authorizer import Authorizer
from ..capabilities.base import Capability
from ..capabilities.registry import CapabilityRegistry
from ..errors import CapabilityNotFound, GatewayError, InvalidParameters, PermissionDenied
from ..schemas.domain import InvocationRequest, Principal
from ..validation.validator import SchemaValidator

logger = logging.getLogger(__name__)


@dataclass
class InvocationState:
    """Request state threaded through the pipeline.

    ``capability`` is filled by the resolution step; later checks rely on it.
    """

    principal: Principal
    request: InvocationRequest
    capability: Optional[Capability] = None


Check = Callable[[InvocationState], Optional[GatewayError]]


def resolve_capability(registry: CapabilityRegistry) -> Check:
    def _check(state: InvocationState) -> Optional[GatewayError]:
        try:
            state.capability = registry.resolve(state.request.capability_id)
        except CapabilityNotFound as e:
            return e
        return None

    return _check


def authorize(authorizer: Authorizer) -> Check:
    def _check(state: InvocationState) -> Optional[GatewayError]:
        assert state.capability is not None
        decision = authorizer.authorize(state.principal, state.capability.descriptor)
        if not decision.allowed:
            return PermissionDenied(decision.missing)
        return None

    return _check


def validate_parameters(validator: SchemaValidator) -> Check:
    def _check(state: InvocationState) -> Optional[GatewayError]:
        assert state.capability is not None
        res = validator.validate(state.capability.descriptor.parameters, state.request.parameters)
        if not res.valid:
            return InvalidParameters(res.field, res.error or "invalid parameters")
        return None

    return _check


class CheckPipeline:
    """Run named checks in order, stopping at the first terminal error."""

    def __init__(self, checks: Sequence[Tuple[str, Check]]) -> None:
        self._checks: List[Tuple[str, Check]] = list(checks)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._checks]

    def run(self, state: InvocationState) -> Optional[GatewayError]:
        for name, check in self._checks:
            err = check(state)
            if err is not None:
                logger.debug(
                    "Check '%s' rejected %s for subject '%s': %s",
                    name,
                    state.request.capability_id,
                    state.principal.subject,
                    err.code,
                )
                return err
        return None


def default_pipeline(
    registry: CapabilityRegistry, authorizer: Authorizer, validator: SchemaValidator
) -> CheckPipeline:
    return CheckPipeline(
        [
            ("resolve", resolve_capability(registry)),
            ("authorize", authorize(authorizer)),
            ("validate", validate_parameters(validator)),
        ]
    )
