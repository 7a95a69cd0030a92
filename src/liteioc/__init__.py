"""Minimal inversion-of-control container.

This package provides a lightweight IoC / dependency injection container for
Python. Services are registered by name with an explicit, ordered list of the
services they depend on; the container resolves the graph recursively, detects
circular dependencies, and manages singleton and transient lifetimes.

Exports:
- `Container`: registration, resolution (`resolve` / `aresolve`) and teardown.
- `Lifetime`: Enum for controlling object lifetimes (singleton or transient).
- `ServiceDescriptor`: Declarative record of how to build a named service.
- `autowire`: Optional helper deriving dependency names from a signature.
- Error types, all derived from `ContainerError`.

Declarative configuration lives in `liteioc.config`.
"""

from ._autowire import autowire
from ._container import Container
from ._descriptor import Lifetime, ServiceDescriptor
from ._errors import (
    AsyncFactoryError,
    CircularDependencyError,
    ConstructionError,
    ContainerError,
    ContractError,
    DisposalError,
    DuplicateRegistrationError,
    RegistrationError,
    ResolutionError,
    ResolutionTimeoutError,
    ServiceNotFoundError,
)


__all__ = [
    "AsyncFactoryError",
    "CircularDependencyError",
    "ConstructionError",
    "Container",
    "ContainerError",
    "ContractError",
    "DisposalError",
    "DuplicateRegistrationError",
    "Lifetime",
    "RegistrationError",
    "ResolutionError",
    "ResolutionTimeoutError",
    "ServiceDescriptor",
    "ServiceNotFoundError",
    "autowire",
]
