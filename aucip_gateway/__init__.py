"""AUCIP Gateway.

This package implements the core of an AUCIP capability-invocation gateway:
a protocol layer that lets a caller discover a catalog of named, versioned,
permission-gated operations ("capabilities"), invoke them synchronously or as
asynchronous jobs, group invocations into batches, and subscribe to
capability events via webhook callbacks.

High-level architecture
-----------------------

A request enters with a bearer credential and a capability id:

1. The ``Authenticator`` resolves the credential into a ``Principal``.
2. The ``ExecutionEngine`` runs its check pipeline: resolve the capability in
   the ``CapabilityRegistry``, authorize via the ``Authorizer``, validate
   parameters with the ``SchemaValidator``.
3. Sync capabilities execute inline; async capabilities become ``Job`` entries
   driven by the ``JobManager``.
4. Execution and job lifecycle events are published to the
   ``SubscriptionManager``, which delivers them to webhook callbacks.

Core subpackages
----------------

- ``aucip_gateway.capabilities``: descriptors, handler protocol, registry.
- ``aucip_gateway.validation``: JSON-schema-like parameter validation.
- ``aucip_gateway.auth``: authentication contract and permission checks.
- ``aucip_gateway.runtime``: check pipeline and execution engine.
- ``aucip_gateway.jobs``: asynchronous job state machine.
- ``aucip_gateway.batch``: best-effort and all-or-nothing batches.
- ``aucip_gateway.subscriptions``: subscriptions and webhook delivery.
- ``aucip_gateway.protocol``: transport-neutral facade and wire envelopes.

Typical wiring
--------------

Populate a registry, then hand it to ``AucipGateway`` together with an
``Authenticator`` and a ``PermissionProvider``. A transport binding calls the
gateway's coroutines and returns each ``ProtocolResponse`` unchanged.
"""

from .capabilities import Capability, CapabilityRegistry, HandlerContext
from .errors import GatewayError
from .protocol import AucipGateway, ProtocolResponse
from .schemas import CapabilityDescriptor, ExecutionMode, Principal

__all__ = [
    "AucipGateway",
    "Capability",
    "CapabilityDescriptor",
    "CapabilityRegistry",
    "ExecutionMode",
    "GatewayError",
    "HandlerContext",
    "Principal",
    "ProtocolResponse",
]
