from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Final

from ._descriptor import Lifetime
from ._errors import ResolutionTimeoutError


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final[Any] = _Missing()


class Evicted(Exception):  # noqa: N818
    """The construction being waited on was evicted; the service must be looked up again."""


class _Claim:
    """An in-flight singleton construction that other callers can wait on."""

    __slots__ = ("_done", "_futures", "evicted")

    def __init__(self) -> None:
        self._done = threading.Event()
        self._futures: list[asyncio.Future[None]] = []
        self.evicted = False

    def wait(self, timeout: float | None) -> bool:
        return self._done.wait(timeout)

    def add_future(self, fut: asyncio.Future[None]) -> None:
        self._futures.append(fut)

    def discard_future(self, fut: asyncio.Future[None]) -> None:
        if fut in self._futures:
            self._futures.remove(fut)

    def release(self, *, evicted: bool = False) -> None:
        if evicted:
            self.evicted = True
        self._done.set()
        futures, self._futures = self._futures, []
        for fut in futures:
            loop = fut.get_loop()
            if fut.done() or loop.is_closed():
                continue
            try:
                loop.call_soon_threadsafe(_wake, fut)
            except RuntimeError:
                # loop closed between the check and the call
                logger.debug("Dropped waiter on a closed event loop")


def _wake(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)


class LifecycleManager:
    """Caches singletons and gates their construction to at most one build per name.

    A caller either finds the cached instance, joins an in-flight construction as a
    waiter, or claims the name and builds it. Failures are never cached: when the
    owner fails, waiters wake up and race for a fresh claim. When the name is evicted
    mid-construction, waiters get `Evicted` instead, since their `build` may belong
    to a replaced registration.
    """

    def __init__(self) -> None:
        self._instances: dict[str, Any] = {}
        self._unowned: set[str] = set()
        self._order: list[str] = []  # construction order, oldest first
        self._claims: dict[str, _Claim] = {}
        self._lock = threading.Lock()

    def get_cached(self, name: str) -> Any:
        with self._lock:
            return self._instances.get(name, MISSING)

    def construct(
        self,
        name: str,
        lifetime: Lifetime,
        build: Callable[[], Any],
        *,
        owned: bool = True,
        timeout: float | None = None,
    ) -> Any:
        if lifetime is Lifetime.TRANSIENT:
            logger.debug("Creating transient service: %s", name)
            return build()

        deadline = time.monotonic() + (timeout or 0.0)
        while True:
            with self._lock:
                if name in self._instances:
                    logger.debug("Returning cached singleton service: %s", name)
                    return self._instances[name]
                claim = self._claims.get(name)
                owner = claim is None
                if claim is None:
                    claim = self._claims[name] = _Claim()

            if owner:
                logger.debug("Creating singleton service: %s", name)
                try:
                    instance = build()
                except BaseException:
                    self._abandon(name, claim)
                    raise
                return self._publish(name, claim, instance, owned=owned)

            if timeout is None:
                claim.wait(None)
            elif not claim.wait(max(0.0, deadline - time.monotonic())):
                raise ResolutionTimeoutError(name, timeout)

            if claim.evicted:
                raise Evicted(name)

    async def aconstruct(
        self,
        name: str,
        lifetime: Lifetime,
        build: Callable[[], Any],
        *,
        owned: bool = True,
    ) -> Any:
        if lifetime is Lifetime.TRANSIENT:
            logger.debug("Creating transient service: %s", name)
            return await _maybe_await(build())

        loop = asyncio.get_running_loop()
        while True:
            fut: asyncio.Future[None] | None = None
            with self._lock:
                if name in self._instances:
                    logger.debug("Returning cached singleton service: %s", name)
                    return self._instances[name]
                claim = self._claims.get(name)
                if claim is None:
                    claim = self._claims[name] = _Claim()
                else:
                    fut = loop.create_future()
                    claim.add_future(fut)

            if fut is None:
                logger.debug("Creating singleton service: %s", name)
                try:
                    instance = await _maybe_await(build())
                except BaseException:
                    self._abandon(name, claim)
                    raise
                return self._publish(name, claim, instance, owned=owned)

            try:
                await fut
            finally:
                with self._lock:
                    claim.discard_future(fut)

            if claim.evicted:
                raise Evicted(name)

    def evict(self, name: str) -> Any:
        """Forget a cached singleton (and any in-flight claim) without releasing it."""
        with self._lock:
            instance = self._instances.pop(name, MISSING)
            self._unowned.discard(name)
            if instance is not MISSING:
                self._order.remove(name)
            claim = self._claims.pop(name, None)
            if claim is not None:
                claim.release(evicted=True)
        if instance is not MISSING:
            logger.debug("Evicted cached singleton service: %s", name)
        return instance

    def drain(self) -> list[tuple[str, Any]]:
        """Empty the cache, returning owned instances newest first."""
        with self._lock:
            drained = [(name, self._instances[name]) for name in reversed(self._order) if name not in self._unowned]
            self._instances.clear()
            self._unowned.clear()
            self._order.clear()
        return drained

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def _publish(self, name: str, claim: _Claim, instance: Any, *, owned: bool) -> Any:
        with self._lock:
            if self._claims.get(name) is claim:
                del self._claims[name]
                self._instances[name] = instance
                self._order.append(name)
                if not owned:
                    self._unowned.add(name)
                claim.release()
                logger.debug("Singleton service created and cached: %s", name)
            else:
                # evicted while under construction; hand the instance out uncached
                logger.debug("Singleton service %s was evicted during construction; not caching", name)
        return instance

    def _abandon(self, name: str, claim: _Claim) -> None:
        with self._lock:
            if self._claims.get(name) is claim:
                del self._claims[name]
            claim.release()
        logger.debug("Construction of singleton service %s failed; nothing cached", name)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
