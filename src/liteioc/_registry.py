from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from ._errors import DuplicateRegistrationError, ServiceNotFoundError


if TYPE_CHECKING:
    from ._descriptor import ServiceDescriptor


logger = logging.getLogger(__name__)


class Registry:
    """Name -> ServiceDescriptor map. Writers are serialized; nothing is constructed here."""

    def __init__(self) -> None:
        self._descriptors: dict[str, ServiceDescriptor] = {}
        self._lock = threading.RLock()

    def register(self, descriptor: ServiceDescriptor, *, replace: bool = False) -> ServiceDescriptor | None:
        """Store `descriptor`, returning the descriptor it replaced (if any)."""
        with self._lock:
            previous = self._descriptors.get(descriptor.name)
            if previous is not None and not replace:
                raise DuplicateRegistrationError(descriptor.name)
            self._descriptors[descriptor.name] = descriptor

        logger.debug(
            "%s service: %s with lifetime: %s",
            "Replaced" if previous is not None else "Registered",
            descriptor.name,
            descriptor.lifetime.value,
        )
        return previous

    def get(self, name: str, *, requested_by: str | None = None) -> ServiceDescriptor:
        with self._lock:
            descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ServiceNotFoundError(name, requested_by=requested_by)
        return descriptor

    def unregister(self, name: str) -> ServiceDescriptor | None:
        with self._lock:
            removed = self._descriptors.pop(name, None)
        if removed is not None:
            logger.debug("Unregistered service: %s", name)
        return removed

    def names(self) -> list[str]:
        with self._lock:
            return list(self._descriptors)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._descriptors

    def __len__(self) -> int:
        with self._lock:
            return len(self._descriptors)
