from __future__ import annotations

import types
from typing import Any, TypeGuard, Union, get_args, get_origin


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_protocol_class(candidate: object) -> bool:
    return is_runtime_class(candidate) and bool(getattr(candidate, "_is_protocol", False))


def implements(implementation: object, service: object) -> bool:
    """Return false only when ``implementation`` provably does not implement ``service``.

    Protocols and non-class services (aliases, ``NewType`` tokens and the
    like) cannot be checked nominally, so they always pass.

    Args:
        implementation: Concrete type being bound.
        service: Abstract service the binding answers to.

    """
    if not is_runtime_class(implementation) or not is_runtime_class(service):
        return True
    if is_protocol_class(service):
        return True
    try:
        return issubclass(implementation, service)
    except TypeError:
        return True


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Split ``X | None`` into ``(X, True)``. Other annotations return ``(annotation, False)``."""
    if get_origin(annotation) not in (Union, types.UnionType):
        return annotation, False
    args = get_args(annotation)
    arms = [arm for arm in args if arm is not type(None)]
    if len(arms) != 1 or len(arms) == len(args):
        return annotation, False
    return arms[0], True


__all__ = ["implements", "is_protocol_class", "is_runtime_class", "unwrap_optional"]
