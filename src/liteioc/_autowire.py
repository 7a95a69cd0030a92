from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

from ._descriptor import Lifetime
from ._errors import ContractError
from ._validation import check_class


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ._container import Container
    from ._descriptor import ServiceDescriptor


_INJECTABLE_KINDS = (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)


def autowire(
    container: Container,
    target: Callable[..., Any],
    *,
    name: str | None = None,
    lifetime: Lifetime = Lifetime.SINGLETON,
    aliases: Mapping[str, str] | None = None,
    replace: bool = False,
    contract: type | None = None,
) -> ServiceDescriptor:
    """Register `target`, deriving its dependency names from its signature.

    Every required parameter becomes a dependency named after the parameter, unless
    `aliases` maps it to another service name. Parameters with defaults, *args and
    **kwargs are left alone. The result is an ordinary explicit registration.

    Example:
      class Repo:
          def __init__(self, db, logger): ...

      autowire(container, Repo)                      # depends on ["db", "logger"]
      autowire(container, Repo, aliases={"db": "primary_db"})

    """
    aliases = dict(aliases or {})
    params = injectable_parameters(target)

    unknown = set(aliases) - set(params)
    if unknown:
        msg = f"Aliases {sorted(unknown)} do not match any injectable parameter of {_describe(target)}"
        raise ValueError(msg)

    if name is None:
        name = getattr(target, "__name__", None)
        if not name:
            msg = f"Cannot derive a service name from {target!r}; pass name=..."
            raise ValueError(msg)

    if contract is not None and inspect.isclass(target):
        detail = check_class(contract, target)
        if detail is not None:
            raise ContractError(name, contract, detail)

    dependencies = [aliases.get(param, param) for param in params]
    return container.register(
        name,
        _KeywordFactory(target, params),
        dependencies,
        lifetime,
        replace=replace,
        contract=contract,
    )


def injectable_parameters(target: Callable[..., Any]) -> list[str]:
    """Names of the parameters of `target` the container must supply."""
    try:
        sig = inspect.signature(target)
    except (TypeError, ValueError) as e:
        msg = f"Cannot inspect signature of {_describe(target)}: {e}"
        raise TypeError(msg) from e

    params = []
    for p in sig.parameters.values():
        if p.kind is inspect.Parameter.POSITIONAL_ONLY and p.default is inspect.Parameter.empty:
            msg = f"Positional-only parameter '{p.name}' of {_describe(target)} cannot be injected by name"
            raise TypeError(msg)
        if p.kind in _INJECTABLE_KINDS and p.default is inspect.Parameter.empty:
            params.append(p.name)
    return params


class _KeywordFactory:
    """Calls `target` with positionally-resolved dependencies passed back as keywords."""

    __slots__ = ("_params", "_target")

    def __init__(self, target: Callable[..., Any], params: list[str]) -> None:
        self._target = target
        self._params = tuple(params)

    def __call__(self, *resolved: Any) -> Any:
        return self._target(**dict(zip(self._params, resolved)))

    def __repr__(self) -> str:
        return f"autowired({_describe(self._target)})"


def _describe(target: object) -> str:
    return getattr(target, "__qualname__", None) or repr(target)
