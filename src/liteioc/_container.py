from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from functools import partial
from typing import TYPE_CHECKING, Any

from ._cycles import CycleDetector
from ._descriptor import Lifetime, ServiceDescriptor
from ._errors import (
    AsyncFactoryError,
    ConstructionError,
    ContainerError,
    ContractError,
    DisposalError,
    ResolutionTimeoutError,
)
from ._lifecycle import MISSING, Evicted, LifecycleManager
from ._registry import Registry
from ._validation import check_class, check_instance


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import TracebackType


logger = logging.getLogger(__name__)


class Container:
    """Minimal IoC container.

    - register services by name with an explicit, ordered dependency list
    - resolve recursively, detecting circular dependencies
    - lifetimes: singleton / transient
    - sync (`resolve`) and async (`aresolve`) factories
    - teardown releases singletons newest first.
    """

    def __init__(self) -> None:
        self._registry = Registry()
        self._lifecycle = LifecycleManager()
        self._cycles = CycleDetector()
        # serializes registry writes together with the cache eviction they imply
        self._lock = threading.RLock()
        self._background: set[asyncio.Task[Any]] = set()

    # ---- Registration ----
    def register(
        self,
        name: str,
        factory: Callable[..., Any],
        dependencies: Iterable[str] = (),
        lifetime: Lifetime = Lifetime.SINGLETON,
        *,
        replace: bool = False,
        contract: type | None = None,
    ) -> ServiceDescriptor:
        """Register a factory under `name`.

        `factory` is called with the resolved `dependencies` as positional arguments.

        Example:
          container.register("logger", Logger)
          container.register("db", Database, ["logger"], Lifetime.SINGLETON)

        """
        if isinstance(dependencies, str):
            msg = f"Dependencies of {name!r} must be a sequence of names, not a string"
            raise TypeError(msg)

        descriptor = ServiceDescriptor(
            name=name,
            factory=factory,
            dependencies=tuple(dependencies),
            lifetime=lifetime,
            contract=contract,
        )
        self.add(descriptor, replace=replace)
        return descriptor

    def add(self, descriptor: ServiceDescriptor, *, replace: bool = False) -> None:
        """Register a pre-built descriptor."""
        contract = descriptor.contract
        if contract is not None and descriptor.owned and inspect.isclass(descriptor.factory):
            detail = check_class(contract, descriptor.factory)
            if detail is not None:
                raise ContractError(descriptor.name, contract, detail)

        with self._lock:
            previous = self._registry.register(descriptor, replace=replace)
            if previous is not None:
                self._lifecycle.evict(descriptor.name)

    def register_instance(
        self,
        name: str,
        instance: object,
        *,
        replace: bool = False,
        contract: type | None = None,
    ) -> ServiceDescriptor:
        """Register a pre-built instance (always singleton, never released by the container)."""
        if contract is not None:
            detail = check_instance(contract, instance)
            if detail is not None:
                raise ContractError(name, contract, detail)

        descriptor = ServiceDescriptor(
            name=name,
            factory=partial(_identity, instance),
            lifetime=Lifetime.SINGLETON,
            contract=contract,
            owned=False,
        )
        self.add(descriptor, replace=replace)
        return descriptor

    def unregister(self, name: str) -> None:
        """Remove `name` and evict its cached singleton. Unknown names are ignored."""
        with self._lock:
            self._registry.unregister(name)
            self._lifecycle.evict(name)

    def is_registered(self, name: str) -> bool:
        return name in self._registry

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def names(self) -> list[str]:
        return self._registry.names()

    def descriptor(self, name: str) -> ServiceDescriptor:
        return self._registry.get(name)

    # ---- Resolution ----
    def resolve(self, name: str, *, timeout: float | None = None) -> Any:
        """Resolve `name` to an instance, constructing its dependency graph as needed.

        `timeout` bounds the wait on another caller's in-flight singleton construction.
        Raises AsyncFactoryError when a factory on the chain returns an awaitable.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            return self._resolve(name, deadline)
        except ResolutionTimeoutError as e:
            if timeout is None:
                raise
            raise ResolutionTimeoutError(e.name, timeout) from None

    async def aresolve(self, name: str, *, timeout: float | None = None) -> Any:
        """Resolve `name`, awaiting any asynchronous factories on the construction chain.

        On `timeout` expiry the caller stops waiting, but construction already in
        flight keeps running so a singleton is still built at most once.
        """
        if timeout is None:
            return await self._aresolve(name)

        task = asyncio.ensure_future(self._aresolve(name))
        self._background.add(task)
        task.add_done_callback(self._forget_task)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            raise ResolutionTimeoutError(name, timeout) from None

    def _resolve(self, name: str, deadline: float | None) -> Any:
        with self._cycles.track(name) as chain:
            while True:
                descriptor = self._registry.get(name, requested_by=_requester(chain))

                if descriptor.is_singleton:
                    cached = self._lifecycle.get_cached(name)
                    if cached is not MISSING:
                        return cached

                resolved = [self._resolve(dep, deadline) for dep in descriptor.dependencies]

                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    return self._lifecycle.construct(
                        name,
                        descriptor.lifetime,
                        partial(self._build, descriptor, resolved),
                        owned=descriptor.owned,
                        timeout=remaining,
                    )
                except Evicted:
                    logger.debug("Service %s was replaced or removed during construction; looking it up again", name)

    async def _aresolve(self, name: str) -> Any:
        with self._cycles.track(name) as chain:
            while True:
                descriptor = self._registry.get(name, requested_by=_requester(chain))

                if descriptor.is_singleton:
                    cached = self._lifecycle.get_cached(name)
                    if cached is not MISSING:
                        return cached

                resolved = [await self._aresolve(dep) for dep in descriptor.dependencies]

                try:
                    return await self._lifecycle.aconstruct(
                        name,
                        descriptor.lifetime,
                        partial(self._abuild, descriptor, resolved),
                        owned=descriptor.owned,
                    )
                except Evicted:
                    logger.debug("Service %s was replaced or removed during construction; looking it up again", name)

    def _build(self, descriptor: ServiceDescriptor, resolved: list[Any]) -> Any:
        try:
            instance = descriptor.build(resolved)
        except ContainerError:
            raise
        except Exception as e:
            raise ConstructionError(descriptor.name, e) from e

        if inspect.isawaitable(instance):
            if inspect.iscoroutine(instance):
                instance.close()
            raise AsyncFactoryError(descriptor.name)

        self._check_contract(descriptor, instance)
        return instance

    async def _abuild(self, descriptor: ServiceDescriptor, resolved: list[Any]) -> Any:
        try:
            instance = descriptor.build(resolved)
            if inspect.isawaitable(instance):
                instance = await instance
        except ContainerError:
            raise
        except Exception as e:
            raise ConstructionError(descriptor.name, e) from e

        self._check_contract(descriptor, instance)
        return instance

    def _check_contract(self, descriptor: ServiceDescriptor, instance: object) -> None:
        if descriptor.contract is None:
            return
        detail = check_instance(descriptor.contract, instance)
        if detail is not None:
            raise ContractError(descriptor.name, descriptor.contract, detail)

    def _forget_task(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Abandoned resolution finished with %r", task.exception())

    # ---- Teardown ----
    def dispose(self) -> None:
        """Clear the singleton cache, calling `close()` on each owned instance, newest first."""
        failures: list[tuple[str, BaseException]] = []
        for name, instance in self._lifecycle.drain():
            close = getattr(instance, "close", None)
            if not callable(close):
                if callable(getattr(instance, "aclose", None)):
                    logger.warning("Service %s only exposes aclose(); use adispose() to release it", name)
                continue

            logger.debug("Releasing singleton service: %s", name)
            try:
                result = close()
            except Exception as e:
                logger.exception("Failed to release service %s", name)
                failures.append((name, e))
                continue

            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                logger.warning("close() of service %s returned an awaitable; use adispose() to release it", name)

        if failures:
            raise DisposalError(failures)

    async def adispose(self) -> None:
        """Async teardown: prefers `aclose()`, falls back to `close()`, newest first."""
        failures: list[tuple[str, BaseException]] = []
        for name, instance in self._lifecycle.drain():
            release = getattr(instance, "aclose", None)
            if not callable(release):
                release = getattr(instance, "close", None)
            if not callable(release):
                continue

            logger.debug("Releasing singleton service: %s", name)
            try:
                result = release()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Failed to release service %s", name)
                failures.append((name, e))

        if failures:
            raise DisposalError(failures)

    def __enter__(self) -> Container:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    async def __aenter__(self) -> Container:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.adispose()


def _identity(instance: object) -> object:
    return instance


def _requester(chain: tuple[str, ...]) -> str | None:
    return chain[-2] if len(chain) > 1 else None
