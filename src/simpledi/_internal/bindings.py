from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeAlias

from simpledi._internal.service_key import ServiceKey

logger = logging.getLogger(__name__)

BindingId: TypeAlias = int
"""A unique, monotonically increasing id assigned to every registration."""

Guard: TypeAlias = Callable[[], bool]
"""A zero-argument predicate deciding whether a conditional binding applies."""


class Lifetime(str, Enum):
    """Defines how long a resolved instance is reused."""

    TRANSIENT = "transient"
    """A new instance is created every time the service is requested."""

    SINGLETON = "singleton"
    """One instance per container, created lazily on first resolution."""

    SCOPED = "scoped"
    """One instance per scope. The container itself acts as the outermost scope."""


class Strategy(str, Enum):
    """Defines how a binding produces its instance."""

    TYPE = "type"
    """Build the implementation type through its construction plan."""

    FACTORY = "factory"
    """Call a user factory with the resolving container or scope."""

    INSTANCE = "instance"
    """Return a fixed, pre-built instance."""


@dataclass(frozen=True, kw_only=True)
class BindingRecord:
    """Describe how a single service key is produced and cached."""

    ID_COUNTER: ClassVar[itertools.count[int]] = itertools.count(1)

    key: ServiceKey
    """The service key this binding answers to."""
    strategy: Strategy
    """Which of ``implementation``/``factory``/``instance`` is used."""
    implementation: Any = None
    """The concrete type for ``Strategy.TYPE`` bindings."""
    factory: Callable[[Any], Any] | None = None
    """The factory for ``Strategy.FACTORY`` bindings."""
    instance: Any = None
    """The pre-built value for ``Strategy.INSTANCE`` bindings."""
    lifetime: Lifetime = Lifetime.TRANSIENT
    """The reuse policy of the produced instance."""
    guard: Guard | None = None
    """Optional predicate making the binding conditional."""
    pooled: bool = False
    """Whether released transient instances may be handed out again."""
    collection_member: bool = False
    """Whether this record was registered only as a ``resolve_all`` member."""

    binding_id: BindingId = field(init=False)
    """The unique id of this record, also its global registration order."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "binding_id", next(self.ID_COUNTER))

    @property
    def is_conditional(self) -> bool:
        return self.guard is not None

    @property
    def construction_target(self) -> Any:
        """Return the object tracked while this binding is under construction."""
        if self.strategy is Strategy.FACTORY:
            return self.factory
        return self.implementation


@dataclass(frozen=True, kw_only=True)
class DecoratorRecord:
    """Describe a decorator wrapped around every resolution of a service key."""

    key: ServiceKey
    decorator: type[Any]
    order: int = 0
    binding_id: BindingId = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "binding_id", next(BindingRecord.ID_COUNTER))


class BindingRegistry:
    """Store binding records indexed by service key.

    Reads never lock: every mutation builds new immutable tuples and swaps the
    index reference under a write lock, so concurrent resolutions always see a
    consistent snapshot.

    Service records keep insertion order, except that registering an
    unconditional singleton replaces every unconditional record of the same
    key. Collection members and decorators are kept apart from service records.
    """

    def __init__(self) -> None:
        self._write_lock = threading.Lock()
        self._records: dict[ServiceKey, tuple[BindingRecord, ...]] = {}
        self._members: dict[Any, tuple[BindingRecord, ...]] = {}
        self._decorators: dict[ServiceKey, tuple[DecoratorRecord, ...]] = {}
        self._collections: dict[Any, bool] = {}

    def add(self, record: BindingRecord) -> list[BindingRecord]:
        """Add a binding record and return the records it replaced.

        Args:
            record: Binding record to register.

        """
        with self._write_lock:
            if record.collection_member:
                members = dict(self._members)
                members[record.key.service] = (*members.get(record.key.service, ()), record)
                self._members = members
                logger.debug("Registered collection member %s", record.implementation)
                return []

            existing = self._records.get(record.key, ())
            replaced: list[BindingRecord] = []
            if record.lifetime is Lifetime.SINGLETON and not record.is_conditional:
                replaced = [item for item in existing if not item.is_conditional]
                existing = tuple(item for item in existing if item.is_conditional)

            records = dict(self._records)
            records[record.key] = (*existing, record)
            self._records = records

        logger.debug(
            "Bound %s to %s (%s, %s)",
            record.key,
            record.construction_target if record.strategy is not Strategy.INSTANCE else "instance",
            record.strategy.value,
            record.lifetime.value,
        )
        return replaced

    def add_decorator(self, record: DecoratorRecord) -> None:
        """Add a decorator record for its service key.

        Args:
            record: Decorator record to register.

        """
        with self._write_lock:
            decorators = dict(self._decorators)
            decorators[record.key] = (*decorators.get(record.key, ()), record)
            self._decorators = decorators

    def declare_collection(self, service: Any, *, allow_empty: bool) -> None:
        """Record whether ``resolve_all(service)`` may return nothing.

        Args:
            service: Abstract type of the collection.
            allow_empty: Whether an empty result is valid.

        """
        with self._write_lock:
            collections = dict(self._collections)
            collections[service] = allow_empty
            self._collections = collections

    def remove(self, key: ServiceKey) -> list[BindingRecord]:
        """Remove every record bound to ``key`` and return the removed records.

        Args:
            key: Service key to unbind.

        """
        with self._write_lock:
            records = dict(self._records)
            removed = list(records.pop(key, ()))
            self._records = records

            if key.name is None and key.service in self._members:
                members = dict(self._members)
                removed.extend(members.pop(key.service))
                self._members = members

            if key in self._decorators:
                decorators = dict(self._decorators)
                del decorators[key]
                self._decorators = decorators

        if removed:
            logger.debug("Unbound %s (%d records)", key, len(removed))
        return removed

    def lookup(self, key: ServiceKey) -> tuple[BindingRecord, ...]:
        """Return the service records of ``key`` in registration order."""
        return self._records.get(key, ())

    def lookup_all(self, service: Any) -> list[BindingRecord]:
        """Return every named and unnamed record plus collection members of ``service``."""
        records = [
            record
            for key, key_records in self._records.items()
            if key.service == service
            for record in key_records
        ]
        records.extend(self._members.get(service, ()))
        records.sort(key=lambda record: record.binding_id)
        return records

    def decorators(self, key: ServiceKey) -> list[DecoratorRecord]:
        """Return decorators of ``key`` in ascending order, ties in registration order."""
        return sorted(
            self._decorators.get(key, ()),
            key=lambda record: (record.order, record.binding_id),
        )

    def allows_empty(self, service: Any) -> bool:
        """Return whether an empty collection of ``service`` is valid."""
        return self._collections.get(service, True)

    def contains(self, key: ServiceKey) -> bool:
        return bool(self._records.get(key))

    def has_service(self, service: Any) -> bool:
        """Return whether any record (of any name) or member exists for ``service``."""
        return any(key.service == service for key in self._records) or bool(
            self._members.get(service),
        )

    def keys(self) -> list[ServiceKey]:
        return [key for key, records in self._records.items() if records]

    def records(self) -> list[BindingRecord]:
        """Return every service record and collection member."""
        everything = [record for records in self._records.values() for record in records]
        everything.extend(record for members in self._members.values() for record in members)
        return everything

    def decorated_keys(self) -> list[ServiceKey]:
        return list(self._decorators)

    def declared_collections(self) -> dict[Any, bool]:
        return dict(self._collections)

    def extend(self, records: Iterable[BindingRecord]) -> None:
        """Register several records in order."""
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values()) + sum(
            len(members) for members in self._members.values()
        )
