"""Capability contracts: does a class or instance satisfy what a consumer expects?

Plain classes and ABCs are checked nominally. Protocols are checked nominally
through the MRO first, then structurally (member presence, positional arity,
return annotations).
"""

from __future__ import annotations

import inspect
import typing
from typing import Any, Protocol, cast, get_type_hints


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and issubclass(tp, cast("type", Protocol)) and tp is not Protocol


def is_runtime_checkable_protocol(tp: type) -> bool:
    if not is_protocol(tp):
        return False

    try:
        isinstance(None, tp)
    except TypeError:
        return False
    else:
        return True


def check_class(contract: type, impl: type) -> str | None:
    """Return why `impl` does not satisfy `contract`, or None when it does."""
    if not is_protocol(contract):
        if not issubclass(impl, contract):
            return f"{impl.__name__} is not a subclass of {contract.__name__}"
        return None

    if contract in getattr(impl, "__mro__", ()):
        return None

    return _structural_mismatch(contract, impl)


def check_instance(contract: type, instance: object) -> str | None:
    if not is_protocol(contract):
        if not isinstance(instance, contract):
            return f"{type(instance).__name__} is not an instance of {contract.__name__}"
        return None

    detail = check_class(contract, type(instance))
    if detail is not None:
        return detail

    if is_runtime_checkable_protocol(contract) and not isinstance(instance, contract):
        return f"{type(instance).__name__} does not implement runtime protocol {contract.__name__}"
    return None


def _positional_arity(params: list[inspect.Parameter]) -> int:
    return sum(
        1
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _structural_mismatch(proto: type, impl: type) -> str | None:  # noqa: C901
    missing: list[str] = []
    mismatches: list[str] = []

    try:
        proto_hints = get_type_hints(proto, include_extras=True)
    except (TypeError, NameError):
        proto_hints = {}

    # attributes required by annotations
    for name in proto_hints:
        if not name.startswith("_") and not hasattr(impl, name):
            missing.append(name)

    for name, proto_attr in proto.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        if not hasattr(impl, name):
            missing.append(name)
            continue

        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            mismatches.append(f"{name}: not callable on {impl.__name__}")
            continue

        try:
            proto_sig = inspect.signature(proto_attr)
            impl_sig = inspect.signature(impl_attr)
        except (TypeError, ValueError) as e:
            mismatches.append(f"{name}: unable to compare signatures ({e})")
            continue

        proto_params = [p for p in proto_sig.parameters.values() if p.name != "self"]
        impl_params = [p for p in impl_sig.parameters.values() if p.name != "self"]
        if _positional_arity(impl_params) < _positional_arity(proto_params):
            mismatches.append(
                f"{name}: impl has fewer required positional params "
                f"({_positional_arity(impl_params)}) than protocol ({_positional_arity(proto_params)})"
            )

        proto_ret = proto_sig.return_annotation
        impl_ret = impl_sig.return_annotation
        if (
            proto_ret is not inspect.Signature.empty
            and impl_ret is not inspect.Signature.empty
            and proto_ret is not Any
            and impl_ret is not Any
            and not _is_return_type_compatible(impl_ret, proto_ret)
        ):
            mismatches.append(f"{name}: return type {impl_ret!r} is not compatible with {proto_ret!r}")

    if not missing and not mismatches:
        return None

    parts = []
    if missing:
        parts.append(f"missing members: {', '.join(missing)}")
    if mismatches:
        parts.append(f"signature mismatches: {', '.join(mismatches)}")
    return "; ".join(parts)


def _is_return_type_compatible(impl_ret: object, proto_ret: object) -> bool:
    if impl_ret == proto_ret:
        return True

    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # Union, TypeVar, string annotations etc.: be conservative
    return False
