from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


class ContainerError(RuntimeError):
    """Base class for every error raised by the container."""


class RegistrationError(ContainerError):
    pass


class DuplicateRegistrationError(RegistrationError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Service {name!r} is already registered. Pass replace=True to overwrite.")


class ResolutionError(ContainerError):
    """Base class for failures while turning a service name into an instance."""


class ServiceNotFoundError(ResolutionError, LookupError):
    def __init__(self, name: str, requested_by: str | None = None) -> None:
        self.name = name
        self.requested_by = requested_by
        msg = f"No registration found for service: {name!r}"
        if requested_by is not None:
            msg += f" (required by {requested_by!r})"
        super().__init__(msg)


class CircularDependencyError(ResolutionError):
    def __init__(self, path: Iterable[str]) -> None:
        self.path: tuple[str, ...] = tuple(path)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.path)}")


class ConstructionError(ResolutionError):
    def __init__(self, name: str, cause: BaseException) -> None:
        self.name = name
        self.cause = cause
        super().__init__(f"Factory for service {name!r} raised {type(cause).__name__}: {cause}")


class AsyncFactoryError(ResolutionError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Factory for service {name!r} returned an awaitable; use `await container.aresolve(...)` instead."
        )


class ResolutionTimeoutError(ResolutionError, TimeoutError):
    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for service {name!r}")


class ContractError(ResolutionError, TypeError):
    def __init__(self, name: str, contract: type, detail: str) -> None:
        self.name = name
        self.contract = contract
        super().__init__(f"Service {name!r} does not satisfy {contract.__name__}: {detail}")


class DisposalError(ContainerError):
    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        names = ", ".join(name for name, _ in self.failures)
        super().__init__(f"{len(self.failures)} service(s) failed to release: {names}")
