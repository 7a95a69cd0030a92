from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Callable


class Lifetime(Enum):
    SINGLETON = "singleton"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class ServiceDescriptor:
    """Declarative record of how to build a named service.

    - `factory` receives the resolved `dependencies` positionally, in declared order.
    - `contract` optionally names a class or Protocol the instance must satisfy.
    - `owned` is False for pre-built instances the container must not release.

    Example:
      ServiceDescriptor("db", Database, dependencies=("logger",), lifetime=Lifetime.SINGLETON)

    """

    name: str
    factory: Callable[..., Any]
    dependencies: tuple[str, ...] = ()
    lifetime: Lifetime = Lifetime.SINGLETON
    contract: type | None = field(default=None, compare=False)
    owned: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            msg = f"Service name must be a non-empty string, got {self.name!r}"
            raise ValueError(msg)

        if not callable(self.factory):
            msg = f"Factory for service {self.name!r} must be callable, got {type(self.factory).__name__}"
            raise TypeError(msg)

        if isinstance(self.dependencies, str):
            # a bare string would silently split into characters
            msg = f"Dependencies of {self.name!r} must be a sequence of names, not a string"
            raise TypeError(msg)

        deps = tuple(self.dependencies)
        seen: set[str] = set()
        for dep in deps:
            if not isinstance(dep, str) or not dep:
                msg = f"Dependency names of {self.name!r} must be non-empty strings, got {dep!r}"
                raise ValueError(msg)
            if dep in seen:
                msg = f"Dependency {dep!r} is declared more than once by {self.name!r}"
                raise ValueError(msg)
            seen.add(dep)
        object.__setattr__(self, "dependencies", deps)

        if not isinstance(self.lifetime, Lifetime):
            try:
                object.__setattr__(self, "lifetime", Lifetime(self.lifetime))
            except ValueError:
                msg = f"Unknown lifetime {self.lifetime!r} for service {self.name!r}"
                raise ValueError(msg) from None

    @property
    def is_singleton(self) -> bool:
        return self.lifetime is Lifetime.SINGLETON

    def build(self, resolved: list[Any]) -> Any:
        return self.factory(*resolved)
