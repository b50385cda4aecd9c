from __future__ import annotations

import logging
import weakref
from collections import deque
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

from simpledi._internal.bindings import BindingId, BindingRecord, Lifetime, Strategy
from simpledi._internal.lock_mode import LockMode

logger = logging.getLogger(__name__)

_MISSING: Any = object()

DEFAULT_POOL_MAX_SIZE = 64


@runtime_checkable
class Disposable(Protocol):
    """Objects released by ``dispose`` of the container or scope that created them."""

    def dispose(self) -> None: ...


@runtime_checkable
class Poolable(Protocol):
    """Transient objects eligible for the reuse pool.

    ``reset`` must bring the object back to a state indistinguishable from a
    freshly constructed one.
    """

    def reset(self) -> None: ...


class InstanceCache:
    """Cache one instance per binding with double-checked locking.

    Reads go without the lock; a miss takes the lock, checks again, builds and
    publishes. A failed build publishes nothing.
    """

    def __init__(self, lock: AbstractContextManager[object] | None = None) -> None:
        self._instances: dict[BindingId, Any] = {}
        self._owned: list[tuple[BindingId, Any]] = []
        self._lock = lock if lock is not None else LockMode.THREAD.create_lock()

    def get_or_create(self, record: BindingRecord, factory: Callable[[], Any]) -> Any:
        """Return the cached instance of ``record``, building it once on first use.

        Args:
            record: Binding whose instance is cached.
            factory: Builds the instance on a cache miss.

        """
        instance = self._instances.get(record.binding_id, _MISSING)
        if instance is not _MISSING:
            return instance

        with self._lock:
            instance = self._instances.get(record.binding_id, _MISSING)
            if instance is _MISSING:
                instance = factory()
                self._instances[record.binding_id] = instance
                if record.strategy is not Strategy.INSTANCE:
                    self._owned.append((record.binding_id, instance))
        return instance

    def evict(self, binding_ids: Iterable[BindingId]) -> list[Any]:
        """Drop cached instances of the given bindings and return them."""
        ids = set(binding_ids)
        with self._lock:
            evicted = [
                self._instances.pop(item_id) for item_id in ids if item_id in self._instances
            ]
            self._owned = [(item_id, item) for item_id, item in self._owned if item_id not in ids]
        return evicted

    def drain(self) -> list[Any]:
        """Clear the cache and return owned instances, most recently created first."""
        with self._lock:
            owned = [instance for _, instance in reversed(self._owned)]
            self._instances.clear()
            self._owned.clear()
        return owned

    def __contains__(self, binding_id: object) -> bool:
        return binding_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)


class TransientPool:
    """Keep released transient instances per implementation type for reuse.

    Only objects handed out by ``acquire`` are accepted back by ``release``.
    Pooling never happens implicitly: an instance returns to the pool only
    through an explicit ``release`` call.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_POOL_MAX_SIZE,
        lock_mode: LockMode = LockMode.THREAD,
    ) -> None:
        self._max_size = max_size
        self._pools: dict[type[Any], deque[Any]] = {}
        self._handed_out: dict[int, weakref.ref[Any]] = {}
        self._lock = lock_mode.create_lock()

    def acquire(self, implementation: type[Any], factory: Callable[[], Any]) -> tuple[Any, bool]:
        """Return a pooled instance or a new one, and whether it was reused.

        Args:
            implementation: Concrete type the pool is keyed by.
            factory: Builds a new instance when the pool is empty.

        """
        with self._lock:
            pool = self._pools.get(implementation)
            instance = pool.pop() if pool else _MISSING
        reused = instance is not _MISSING
        if not reused:
            instance = factory()
        self._track(instance)
        return instance, reused

    def release(self, instance: Any) -> bool:
        """Reset ``instance`` and return it to its pool.

        Returns ``False`` when the object did not come from this pool or the
        pool for its type is full.
        """
        with self._lock:
            ref = self._handed_out.pop(id(instance), None)
        if ref is None or ref() is not instance:
            return False

        instance.reset()
        implementation = type(instance)
        with self._lock:
            pool = self._pools.setdefault(implementation, deque())
            if len(pool) >= self._max_size:
                return False
            pool.append(instance)
        logger.debug("Returned %s to the transient pool", implementation.__qualname__)
        return True

    @property
    def max_size(self) -> int:
        return self._max_size

    def evict(self, implementations: Iterable[type[Any]]) -> None:
        """Forget pooled instances of the given types."""
        with self._lock:
            for implementation in implementations:
                self._pools.pop(implementation, None)

    def clear(self) -> None:
        with self._lock:
            self._pools.clear()
            self._handed_out.clear()

    def size(self, implementation: type[Any]) -> int:
        """Return how many instances of ``implementation`` wait in the pool."""
        pool = self._pools.get(implementation)
        return len(pool) if pool else 0

    def total(self) -> int:
        return sum(len(pool) for pool in self._pools.values())

    def _track(self, instance: Any) -> None:
        instance_id = id(instance)

        def _forget(_: weakref.ref[Any]) -> None:
            self._handed_out.pop(instance_id, None)

        try:
            ref = weakref.ref(instance, _forget)
        except TypeError:
            logger.debug(
                "%s does not support weak references; it will not be pooled",
                type(instance).__qualname__,
            )
            return
        with self._lock:
            self._handed_out[instance_id] = ref


class LifetimeStore:
    """Decide whether a factory runs or a cached instance is reused.

    A container owns all three tiers. A scope shares its container's singleton
    tier and owns a private scoped tier and pool.
    """

    def __init__(
        self,
        *,
        singletons: InstanceCache,
        scoped: InstanceCache,
        pool: TransientPool,
    ) -> None:
        self.singletons = singletons
        self.scoped = scoped
        self.pool = pool

    @classmethod
    def create(cls, *, lock_mode: LockMode, pool_max_size: int) -> LifetimeStore:
        # One lock guards both container tiers.
        lock = lock_mode.create_lock()
        return cls(
            singletons=InstanceCache(lock),
            scoped=InstanceCache(lock),
            pool=TransientPool(pool_max_size, lock_mode),
        )

    def for_scope(self, lock_mode: LockMode) -> LifetimeStore:
        """Return a store sharing singletons, with a fresh scoped tier and pool."""
        return LifetimeStore(
            singletons=self.singletons,
            scoped=InstanceCache(lock_mode.create_lock()),
            pool=TransientPool(self.pool.max_size, lock_mode),
        )

    def get_or_create(self, record: BindingRecord, factory: Callable[[], Any]) -> Any:
        """Return an instance of ``record`` according to its lifetime.

        Args:
            record: Binding being resolved.
            factory: Builds a new instance when nothing can be reused.

        """
        if record.lifetime is Lifetime.SINGLETON:
            return self.singletons.get_or_create(record, factory)
        if record.lifetime is Lifetime.SCOPED:
            return self.scoped.get_or_create(record, factory)
        return factory()

    def evict(self, records: Iterable[BindingRecord]) -> None:
        """Evict cached and pooled instances of the given bindings."""
        records = list(records)
        binding_ids = [record.binding_id for record in records]
        self.singletons.evict(binding_ids)
        self.scoped.evict(binding_ids)
        self.pool.evict(record.implementation for record in records if record.pooled)


def dispose_instances(instances: Iterable[Any]) -> None:
    """Call ``dispose`` on every disposable instance, logging failures."""
    for instance in instances:
        if not isinstance(instance, Disposable):
            continue
        try:
            instance.dispose()
        except Exception:
            logger.warning("Error disposing %s", type(instance).__qualname__, exc_info=True)
        else:
            logger.debug("Disposed %s", type(instance).__qualname__)
