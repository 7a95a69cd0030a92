from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

from ._errors import CircularDependencyError


if TYPE_CHECKING:
    from collections.abc import Iterator


# The resolution context: names being constructed on the current call chain.
# Immutable tuples, so asyncio tasks that copy the context never share state.
_resolution_chain: ContextVar[tuple[str, ...]] = ContextVar("liteioc_resolution_chain", default=())


class CycleDetector:
    """Tracks in-progress names for the active resolution call chain."""

    def current(self) -> tuple[str, ...]:
        return _resolution_chain.get()

    def enter(self, name: str) -> Token[tuple[str, ...]]:
        chain = _resolution_chain.get()
        if name in chain:
            start = chain.index(name)
            raise CircularDependencyError((*chain[start:], name))
        return _resolution_chain.set((*chain, name))

    def leave(self, token: Token[tuple[str, ...]]) -> None:
        _resolution_chain.reset(token)

    @contextmanager
    def track(self, name: str) -> Iterator[tuple[str, ...]]:
        token = self.enter(name)
        try:
            yield _resolution_chain.get()
        finally:
            self.leave(token)
