from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from ..errors import InvalidCredential, Unauthenticated
from ..schemas.domain import Principal

logger = logging.getLogger(__name__)

_BEARER = "bearer"


class Authenticator(Protocol):
    """Verify a bearer credential and resolve the caller identity.

    Token issuance and signature verification belong to the external
    authentication service; the gateway consumes it through this protocol.
    Implementations raise ``InvalidCredential`` for rejected credentials.
    """

    def authenticate(self, credential: str) -> Principal: ...


def parse_bearer(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header value.

    Raises:
        Unauthenticated: If the header is missing, uses another scheme, or has no token.
    """
    if not authorization:
        raise Unauthenticated()
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != _BEARER or not token.strip():
        raise Unauthenticated()
    return token.strip()


@dataclass(frozen=True)
class StaticTokenAuthenticator(Authenticator):
    """Authenticator backed by an in-memory token table.

    Each token maps to a subject and optional claims. Intended for tests and
    local wiring; production deployments plug in the real verification service.
    """

    tokens: Mapping[str, str] = field(default_factory=dict)
    claims: Mapping[str, Dict[str, Any]] = field(default_factory=dict)

    def authenticate(self, credential: str) -> Principal:
        for token, subject in self.tokens.items():
            if hmac.compare_digest(token.encode("utf-8"), credential.encode("utf-8")):
                return Principal(subject=subject, claims=dict(self.claims.get(subject, {})))
        logger.debug("Rejected unknown credential")
        raise InvalidCredential()


def authenticate_header(authenticator: Authenticator, authorization: Optional[str]) -> Principal:
    """Run the authentication step of the request pipeline."""
    return authenticator.authenticate(parse_bearer(authorization))
