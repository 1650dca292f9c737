from __future__ import annotations

"""Capability registry.

The registry maps a capability id to its descriptor and handler. It is
populated at process start and frozen before serving requests; after
``freeze()`` it is read-only and safe for unsynchronized concurrent reads.
"""

import logging
from typing import Callable, Dict, List, Union

from ..errors import CapabilityNotFound, DuplicateCapabilityError, RegistryFrozenError
from ..schemas.domain import CapabilityDescriptor
from .base import Capability, CapabilityHandler, FunctionHandler

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """
    In-memory, append-only catalog of capabilities.

    This registry is the single source of truth for capability descriptors:
    the engine always resolves descriptors here and never trusts a
    caller-supplied one.

    Notes:
        - ``register`` rejects duplicate ids.
        - ``get`` raises ``CapabilityNotFound`` if the capability is missing.
        - ``list`` preserves registration order.
    """

    def __init__(self) -> None:
        """Initialize an empty capability registry."""
        self._caps: Dict[str, Capability] = {}
        self._frozen = False

    def register(
        self,
        descriptor: CapabilityDescriptor,
        handler: Union[CapabilityHandler, Callable],
    ) -> Capability:
        """
        Register a capability.

        Args:
            descriptor: The capability descriptor. Its ``id`` must be unique.
            handler: A ``CapabilityHandler`` or a plain ``fn(ctx, params)`` callable.

        Returns:
            The registered ``Capability``.

        Raises:
            DuplicateCapabilityError: If the id is already registered.
            RegistryFrozenError: If the registry has been frozen.
        """
        if self._frozen:
            raise RegistryFrozenError("capability registry is frozen")
        if descriptor.id in self._caps:
            raise DuplicateCapabilityError(descriptor.id)
        if not hasattr(handler, "execute"):
            handler = FunctionHandler(handler)
        cap = Capability(descriptor=descriptor, handler=handler)
        self._caps[descriptor.id] = cap
        logger.debug("Registered capability %s (mode=%s)", descriptor.id, descriptor.mode.value)
        return cap

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, capability_id: str) -> Capability:
        """
        Retrieve a registered capability (descriptor and handler) by id.

        Raises:
            CapabilityNotFound: If no capability is registered with the given id.
        """
        try:
            return self._caps[capability_id]
        except KeyError:
            raise CapabilityNotFound(capability_id) from None

    def get(self, capability_id: str) -> CapabilityDescriptor:
        """
        Retrieve a registered descriptor by id.

        Raises:
            CapabilityNotFound: If no capability is registered with the given id.
        """
        return self.resolve(capability_id).descriptor

    def has(self, capability_id: str) -> bool:
        return capability_id in self._caps

    def list(self) -> List[CapabilityDescriptor]:
        return [cap.descriptor for cap in self._caps.values()]

    def __len__(self) -> int:
        return len(self._caps)
