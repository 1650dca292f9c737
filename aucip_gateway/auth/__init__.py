"""Authentication contract and permission-based authorization.

Components
----------

- ``Authenticator``: consumed "verify token → identity" service contract;
  ``StaticTokenAuthenticator`` is an in-memory implementation.
- ``PermissionProvider``: resolves a principal's granted permissions;
  ``StaticPermissionProvider`` and ``ClaimsPermissionProvider`` are provided.
- ``Authorizer``: pure required-vs-granted check producing an
  ``AuthorizationDecision`` with exact missing-permission diagnostics.
"""

from .authentication import Authenticator, StaticTokenAuthenticator, authenticate_header, parse_bearer
from .authorizer import Authorizer
from .models import AuthorizationDecision, PermissionSet, permission_set
from .provider import ClaimsPermissionProvider, PermissionProvider, StaticPermissionProvider

__all__ = [
    "Authenticator",
    "StaticTokenAuthenticator",
    "authenticate_header",
    "parse_bearer",
    "Authorizer",
    "AuthorizationDecision",
    "PermissionSet",
    "permission_set",
    "PermissionProvider",
    "StaticPermissionProvider",
    "ClaimsPermissionProvider",
]
