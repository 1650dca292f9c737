"""Capability registry and handler contracts.

 A *capability* is a named, versioned, permission-gated operation.

 - ``CapabilityDescriptor`` (in ``aucip_gateway.schemas``) is what callers
   discover and what authorization and validation run against.
 - ``CapabilityHandler`` is the business logic the engine dispatches to.
 - ``CapabilityRegistry`` maps capability ids to descriptor/handler pairs.

 This package exports:

 - ``Capability``: a descriptor bound to its handler.
 - ``CapabilityHandler``/``FunctionHandler``: handler protocol and adapter.
 - ``HandlerContext``: execution input passed to handlers.
 - ``CapabilityRegistry``: id → capability mapping.
 """

from .base import Capability, CapabilityHandler, FunctionHandler, HandlerContext
from .registry import CapabilityRegistry

__all__ = [
    "Capability",
    "CapabilityHandler",
    "FunctionHandler",
    "HandlerContext",
    "CapabilityRegistry",
]
