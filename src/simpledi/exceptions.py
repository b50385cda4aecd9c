from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from simpledi._internal.service_key import ServiceKey


class SimpleDIError(Exception):
    """Represent a base class for all SimpleDI-specific failures.

    Catch this type when you want to handle any SimpleDI error path without
    matching each concrete exception class individually.
    """


class SimpleDIRegistrationError(SimpleDIError):
    """Signal an invalid binding configuration.

    Raised by registration APIs such as ``Container.register``,
    ``Container.register_decorator`` and ``BindingHandle.to``, and by
    ``ContainerBuilder.build`` when a validation pass rejects the declared
    bindings (for example a decorator registered for a service that has no
    base binding, or a declared collection without members).
    """


class SimpleDIUnresolvedDependencyError(SimpleDIError):
    """Signal that a service key has no binding in the resolver chain.

    The error carries the requested key and, for diagnostics, every key the
    failing resolver knew about at the time of the call.
    """

    def __init__(
        self,
        service_key: ServiceKey,
        registered_keys: Iterable[ServiceKey] = (),
        *,
        reason: str | None = None,
    ) -> None:
        self.service_key = service_key
        self.registered_keys = tuple(registered_keys)
        available = ", ".join(str(key) for key in self.registered_keys) or "<none>"
        detail = f" ({reason})" if reason else ""
        super().__init__(
            f"Unable to resolve {service_key}{detail}. Registered keys: {available}",
        )


class SimpleDICircularDependencyError(SimpleDIError):
    """Signal a cycle in the object graph detected during construction.

    Raised before the repeated type is constructed a second time, so no
    partially built instance is cached. Never retried and never swallowed,
    not even for optional members.
    """

    def __init__(self, chain: Iterable[Any]) -> None:
        self.chain = tuple(chain)
        path = " -> ".join(_qualname(item) for item in self.chain)
        super().__init__(f"Circular dependency detected: {path}")


class SimpleDIAmbiguousOrMissingImplementationError(SimpleDIError):
    """Signal that an implementation-discriminated resolution found zero or many matches."""

    def __init__(self, service_key: ServiceKey, implementation: Any, matches: int) -> None:
        self.service_key = service_key
        self.implementation = implementation
        self.matches = matches
        problem = "No binding" if matches == 0 else f"{matches} bindings"
        super().__init__(
            f"{problem} found for implementation '{_qualname(implementation)}' "
            f"under {service_key}.",
        )


class SimpleDINoConstructorError(SimpleDIError):
    """Signal that a concrete type exposes no public constructor.

    Abstract classes and protocols never have one. Other types can be made
    constructible by keeping ``__init__`` public or by marking a classmethod
    with ``@constructor``.
    """

    def __init__(self, implementation: Any) -> None:
        self.implementation = implementation
        super().__init__(f"No public constructor found for type '{_qualname(implementation)}'.")


class SimpleDIConstructionError(SimpleDIError):
    """Wrap an exception raised by user code while building an instance.

    The original exception is available as ``__cause__``. Errors raised by
    SimpleDI itself while resolving nested dependencies are never wrapped.
    """

    def __init__(self, implementation: Any, error: BaseException) -> None:
        self.implementation = implementation
        self.error = error
        super().__init__(
            f"Failed to construct '{_qualname(implementation)}': "
            f"{type(error).__name__}: {error}",
        )


class SimpleDIEmptyCollectionError(SimpleDIError):
    """Signal that ``resolve_all`` produced nothing for a non-empty collection."""

    def __init__(self, service: Any) -> None:
        self.service = service
        super().__init__(
            f"Collection of '{_qualname(service)}' is declared non-empty but has no members.",
        )


class SimpleDIObjectDisposedError(SimpleDIError):
    """Signal use of a container or scope after ``dispose``."""

    def __init__(self, owner: object) -> None:
        self.owner = owner
        super().__init__(f"{type(owner).__name__} has already been disposed.")


def _qualname(value: Any) -> str:
    return getattr(value, "__qualname__", None) or repr(value)


__all__ = [
    "SimpleDIAmbiguousOrMissingImplementationError",
    "SimpleDICircularDependencyError",
    "SimpleDIConstructionError",
    "SimpleDIEmptyCollectionError",
    "SimpleDIError",
    "SimpleDINoConstructorError",
    "SimpleDIObjectDisposedError",
    "SimpleDIRegistrationError",
    "SimpleDIUnresolvedDependencyError",
]
