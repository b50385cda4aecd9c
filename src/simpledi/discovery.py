"""Hand pre-existing objects to a container in three separate phases.

Objects created by something other than the container (plugins, host
callbacks, objects loaded from disk) are marked with ``@injectable`` on
their class. ``discover`` turns a batch of such objects into bindings,
and ``install`` registers the whole batch before injecting any of it, so
every object can depend on every other object of the batch.

Examples:
    .. code-block:: python

        @injectable(provides=AudioSink)
        class Speaker:
            mixer: Injected[Mixer]


        batch = discover(scene.objects)
        install(scope, batch)

"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, overload

from simpledi._internal.service_key import ServiceKey

C = TypeVar("C", bound=type[Any])

logger = logging.getLogger(__name__)

INJECTABLE_ATTR = "__simpledi_injectable__"


@dataclass(frozen=True, slots=True)
class InjectableInfo:
    """Registration details attached to a class by ``@injectable``."""

    provides: tuple[Any, ...]
    name: str | None = None


@dataclass(frozen=True, slots=True)
class DiscoveredBinding:
    """One ``(key, instance)`` pair produced by ``discover``."""

    key: ServiceKey
    instance: Any


class InstallTarget(Protocol):
    """A container or scope able to take pre-existing instances."""

    def register_instances(self, instances: Iterable[tuple[Any, Any]]) -> None: ...

    def inject_into(self, target: Any) -> Any: ...


@overload
def injectable(cls: C, /) -> C: ...


@overload
def injectable(
    *,
    provides: Any | Iterable[Any] = (),
    name: str | None = None,
) -> Callable[[C], C]: ...


def injectable(
    cls: C | None = None,
    /,
    *,
    provides: Any | Iterable[Any] = (),
    name: str | None = None,
) -> C | Callable[[C], C]:
    """Mark a class whose existing instances may be discovered and installed.

    Args:
        cls: The decorated class, when used without arguments.
        provides: Service type (or several) each instance is bound to.
            Defaults to the concrete class.
        name: Optional binding name used for every provided service.

    Examples:
        .. code-block:: python

            @injectable
            class Clock: ...


            @injectable(provides=[Reader, Writer], name="primary")
            class FileStore: ...

    """
    if isinstance(provides, (list, tuple, set, frozenset)):
        services = tuple(provides)
    else:
        services = (provides,)

    def decorate(target: C) -> C:
        setattr(target, INJECTABLE_ATTR, InjectableInfo(provides=services, name=name))
        return target

    if cls is not None:
        return decorate(cls)
    return decorate


def discover(objects: Iterable[object]) -> list[DiscoveredBinding]:
    """Return bindings for every object whose class is marked ``@injectable``.

    Unmarked objects are ignored. Discovery only reads the objects; it never
    touches a container.
    """
    discovered: list[DiscoveredBinding] = []
    for obj in objects:
        info: InjectableInfo | None = getattr(type(obj), INJECTABLE_ATTR, None)
        if info is None:
            continue
        for service in info.provides or (type(obj),):
            discovered.append(DiscoveredBinding(ServiceKey.from_value(service, info.name), obj))
    logger.debug("Discovered %d bindings", len(discovered))
    return discovered


def install(target: InstallTarget, discovered: Iterable[DiscoveredBinding]) -> list[Any]:
    """Register every discovered binding, then inject every discovered object.

    Each object is injected once, even when it provides several services.
    Returns the injected objects in discovery order.
    """
    bindings = list(discovered)
    target.register_instances((binding.key, binding.instance) for binding in bindings)

    seen: set[int] = set()
    injected: list[Any] = []
    for binding in bindings:
        if id(binding.instance) in seen:
            continue
        seen.add(id(binding.instance))
        injected.append(target.inject_into(binding.instance))
    logger.debug("Installed %d objects", len(injected))
    return injected


__all__ = [
    "DiscoveredBinding",
    "InjectableInfo",
    "InstallTarget",
    "discover",
    "injectable",
    "install",
]
