from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Tuple

PermissionSet = FrozenSet[str]


def permission_set(values: Iterable[str] | None) -> PermissionSet:
    """Normalize any iterable of permission strings to a ``PermissionSet``."""
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset({values})
    return frozenset(values)


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Result of authorizing a principal against a capability.

    Attributes:
        allowed: Whether every required permission is granted.
        missing: Required permissions absent from the granted set, in the
            capability's declared order. Empty iff ``allowed``.
    """

    allowed: bool
    missing: Tuple[str, ...] = field(default=())

    @classmethod
    def allow(cls) -> "AuthorizationDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, missing: Iterable[str]) -> "AuthorizationDecision":
        return cls(allowed=False, missing=tuple(missing))
