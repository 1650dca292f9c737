from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Protocol

from ..schemas.domain import Principal
from .models import PermissionSet, permission_set

logger = logging.getLogger(__name__)


class PermissionProvider(Protocol):
    """Resolve the granted permission set for a principal.

    Implementations can be backed by a directory service, a database, or
    claims carried in the credential.
    """

    def granted(self, principal: Principal) -> PermissionSet: ...


@dataclass(frozen=True)
class StaticPermissionProvider(PermissionProvider):
    """PermissionProvider backed by an in-memory mapping.

    Lookup order:

    1) subject entry (if present)
    2) ``default`` set

    Unknown subjects receive ``default`` (empty unless configured).
    """

    by_subject: Mapping[str, frozenset] = field(default_factory=dict)
    default: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]], *, default: Iterable[str] = ()) -> "StaticPermissionProvider":
        table: Dict[str, PermissionSet] = {subject: permission_set(perms) for subject, perms in mapping.items()}
        return cls(by_subject=table, default=permission_set(default))

    def granted(self, principal: Principal) -> PermissionSet:
        perms = self.by_subject.get(principal.subject)
        if perms is None:
            logger.debug("No permission entry for subject '%s'; using default set", principal.subject)
            return self.default
        return perms


@dataclass(frozen=True)
class ClaimsPermissionProvider(PermissionProvider):
    """PermissionProvider reading permissions from a principal claim.

    Useful when the authentication service embeds grants in the token
    (e.g. a ``permissions`` or ``scope`` claim). A space-separated string
    claim is split into individual permissions.
    """

    claim: str = "permissions"

    def granted(self, principal: Principal) -> PermissionSet:
        raw = principal.claims.get(self.claim)
        if isinstance(raw, str):
            return permission_set(raw.split())
        if isinstance(raw, (list, tuple, set, frozenset)):
            return permission_set(str(p) for p in raw)
        return frozenset()
