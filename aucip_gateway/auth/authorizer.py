from __future__ import annotations

"""Identity-to-permission authorization.

``Authorizer`` decides whether a principal may invoke a capability. The
decision is a pure function of the principal's granted permissions (from the
injected ``PermissionProvider``) and the descriptor's required permissions:

    allowed  iff  required ⊆ granted

A denial lists exactly ``required − granted`` in the capability's declared
order. Callers must pass the descriptor resolved from the ``CapabilityRegistry``; a
caller-asserted descriptor is never authorized against.
"""

import logging

from ..schemas.domain import CapabilityDescriptor, Principal
from .models import AuthorizationDecision, PermissionSet
from .provider import PermissionProvider

logger = logging.getLogger(__name__)


class Authorizer:
    """Check required-vs-granted permissions for capability invocations."""

    def __init__(self, provider: PermissionProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> PermissionProvider:
        """Return the underlying permission provider."""
        return self._provider

    def granted(self, principal: Principal) -> PermissionSet:
        return self._provider.granted(principal)

    def authorize(self, principal: Principal, capability: CapabilityDescriptor) -> AuthorizationDecision:
        """
        Authorize ``principal`` against ``capability``.

        Args:
            principal: The authenticated caller.
            capability: The registry descriptor of the capability to invoke.

        Returns:
            ``AuthorizationDecision.allow()`` or a denial carrying the missing permissions.
        """
        granted = self._provider.granted(principal)
        if capability.required_permissions <= granted:
            return AuthorizationDecision.allow()
        missing = [p for p in capability.permissions if p not in granted]
        logger.info(
            "Denied %s for subject '%s': missing %s", capability.id, principal.subject, ", ".join(missing)
        )
        return AuthorizationDecision.deny(missing)
