from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from simpledi._internal.markers import find_inject_marker, strip_annotated


@dataclass(frozen=True, slots=True)
class ServiceKey:
    """Identify what a caller wants resolved: an abstract service plus an optional name.

    Two keys with the same service and different names are independent
    bindings. ``Annotated[T, Inject(name=...)]`` tokens normalize to
    ``ServiceKey(T, name)``.
    """

    service: Any
    name: str | None = None

    @classmethod
    def from_value(cls, value: Any, name: str | None = None) -> ServiceKey:
        """Normalize a type, an annotated token or an existing key.

        Args:
            value: Service type, ``Annotated`` token or ``ServiceKey``.
            name: Explicit binding name. Overrides a name carried by ``value``.

        """
        if isinstance(value, ServiceKey):
            if name is None or name == value.name:
                return value
            return cls(value.service, name)

        marker = find_inject_marker(value)
        if name is None and marker is not None:
            name = marker.name
        return cls(strip_annotated(value), name)

    def __str__(self) -> str:
        service_name = getattr(self.service, "__qualname__", None) or repr(self.service)
        if self.name is None:
            return service_name
        return f"{service_name}[{self.name!r}]"
