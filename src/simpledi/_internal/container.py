from __future__ import annotations

import logging
import threading
import weakref
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, TypeVar, overload

from typing_extensions import Self

from simpledi._internal.bindings import (
    BindingRecord,
    BindingRegistry,
    DecoratorRecord,
    Lifetime,
    Strategy,
)
from simpledi._internal.construction import (
    CONSTRUCTION_PLANS,
    MISSING,
    ConstructionPlanCache,
    InjectionPoint,
    call_user_code,
    compile_factory,
    inject_members,
)
from simpledi._internal.decorators import DecoratorComposer
from simpledi._internal.lifetime_store import (
    DEFAULT_POOL_MAX_SIZE,
    Disposable,
    LifetimeStore,
    dispose_instances,
)
from simpledi._internal.lock_mode import LockMode
from simpledi._internal.registration import BindingRegistrar, InstanceRegistrar
from simpledi._internal.resolution_context import constructing
from simpledi._internal.service_key import ServiceKey
from simpledi._internal.validation import validate_registry
from simpledi.exceptions import (
    SimpleDIAmbiguousOrMissingImplementationError,
    SimpleDICircularDependencyError,
    SimpleDIEmptyCollectionError,
    SimpleDIError,
    SimpleDIObjectDisposedError,
    SimpleDIRegistrationError,
    SimpleDIUnresolvedDependencyError,
)

T = TypeVar("T")
D = TypeVar("D")

logger = logging.getLogger(__name__)


class _Resolver(ABC):
    """Resolution engine shared by ``Container`` and ``Scope``.

    A resolver looks a key up along its chain: itself, its parent scopes,
    its container, then parent containers. The node whose registry holds the
    selected record is the record's owner.

    * Singletons are built and cached by their owning container, so their
      dependencies never come from a shorter-lived scope.
    * Scoped instances are built and cached by the requesting node. The
      container acts as the outermost scope.
    * Transients are built by the requesting node.

    Only the binding is borrowed from a parent. Scoped and transient
    instances of a parent container's binding are still built and cached by
    the requesting node, so two scopes never share one.
    """

    _registry: BindingRegistry

    def __init__(
        self,
        *,
        store: LifetimeStore,
        lock_mode: LockMode,
        plans: ConstructionPlanCache,
    ) -> None:
        self._store = store
        self._lock_mode = lock_mode
        self._plans = plans
        self._decorator_composer = DecoratorComposer(plans)
        self._children: weakref.WeakSet[Scope] = weakref.WeakSet()
        self._disposables: list[Disposable] = []
        self._state_lock = threading.Lock()
        self._disposed = False

    # region Resolution
    @overload
    def resolve(
        self,
        service: type[T],
        name: str | None = None,
        *,
        implementation: type[Any] | None = None,
    ) -> T: ...

    @overload
    def resolve(
        self,
        service: Any,
        name: str | None = None,
        *,
        implementation: type[Any] | None = None,
    ) -> Any: ...

    def resolve(
        self,
        service: Any,
        name: str | None = None,
        *,
        implementation: type[Any] | None = None,
    ) -> Any:
        """Resolve an instance of ``service``.

        When several bindings exist for the key, the first conditional binding
        whose guard passes wins, then the first unconditional binding.

        Args:
            service: Service type, annotated token or ``ServiceKey``.
            name: Binding name. ``None`` selects the unnamed binding.
            implementation: Pick the single binding whose concrete type is
                ``implementation`` instead of applying guards.

        Raises:
            SimpleDIUnresolvedDependencyError: If nothing is bound to the key.
            SimpleDICircularDependencyError: If the object graph has a cycle.
            SimpleDIAmbiguousOrMissingImplementationError: If ``implementation``
                matches zero or several bindings.
            SimpleDINoConstructorError: If the bound type has no public constructor.
            SimpleDIConstructionError: If a constructor or factory raised.
            SimpleDIObjectDisposedError: If this resolver was disposed.

        Examples:
            .. code-block:: python

                service = container.resolve(Service)
                square = container.resolve(Shape, "square")
                sword = container.resolve(Weapon, implementation=Sword)

        """
        self._ensure_usable()
        return self._resolve_key(ServiceKey.from_value(service, name), implementation)

    def resolve_named(self, service: Any, name: str) -> Any:
        """Resolve the binding of ``service`` registered under ``name``.

        Raises:
            SimpleDIUnresolvedDependencyError: If no binding has that name.

        """
        return self.resolve(service, name)

    def resolve_all(self, service: Any) -> list[Any]:
        """Resolve one instance per binding of ``service``, in registration order.

        Named, unnamed and collection-member bindings are all included;
        conditional bindings whose guard fails are skipped. Bindings of parent
        containers follow the bindings of this resolver.

        Raises:
            SimpleDIEmptyCollectionError: If the collection was declared
                non-empty and no binding exists.

        Examples:
            .. code-block:: python

                container.register_collection_member(Weapon, Sword)
                container.register_collection_member(Weapon, Gun)

                weapons = container.resolve_all(Weapon)

        """
        self._ensure_usable()
        return self._resolve_collection(ServiceKey.from_value(service).service)

    def is_registered(self, service: Any, name: str | None = None) -> bool:
        """Return whether a binding exists for the key anywhere in the chain."""
        return self._find(ServiceKey.from_value(service, name)) is not None

    def is_registered_named(self, service: Any, name: str) -> bool:
        return self.is_registered(service, name)

    def inject_into(self, target: T) -> T:
        """Fill the injectable members of an object built elsewhere.

        Fields, then properties, then ``@inject`` methods receive their
        dependencies, exactly as for objects the container constructs.

        Examples:
            .. code-block:: python

                view = RequestView()
                scope.inject_into(view)

        """
        self._ensure_usable()
        implementation = type(target)
        plan = self._plans.get(implementation)
        with constructing(implementation):
            inject_members(plan, target, self._resolve_point)
        return target

    def release(self, instance: Any) -> bool:
        """Return a pooled transient to its pool.

        Each container and scope keeps its own pool, so ``instance`` must be
        released to the resolver that returned it. Returns ``False`` when it
        was not handed out by a pooled binding of this resolver.
        """
        self._ensure_usable()
        return self._store.pool.release(instance)

    def register_disposable(self, disposable: D) -> D:
        """Hand an externally created object to this resolver for disposal.

        The object is disposed when this container or scope is disposed,
        before the instances it built. Registered objects are disposed most
        recently registered first.

        Raises:
            SimpleDIRegistrationError: If ``disposable`` has no ``dispose()`` method.

        Examples:
            .. code-block:: python

                connection = open_connection()
                container.register_disposable(connection)

        """
        self._ensure_usable()
        if not isinstance(disposable, Disposable):
            msg = f"'{type(disposable).__qualname__}' does not define a dispose() method."
            raise SimpleDIRegistrationError(msg)
        with self._state_lock:
            self._disposables.append(disposable)
        return disposable

    # endregion Resolution

    # region Scopes and Disposal
    def create_scope(self) -> Scope:
        """Open a child scope with its own scoped instances.

        Examples:
            .. code-block:: python

                with container.create_scope() as scope:
                    session = scope.resolve(Session)

        """
        self._ensure_usable()
        scope = Scope(self)
        with self._state_lock:
            self._children.add(scope)
        logger.debug("Opened scope %s under %s", id(scope), type(self).__name__)
        return scope

    def dispose(self) -> None:
        """Dispose open child scopes, then every disposable instance this resolver built.

        Instances are disposed most recently created first. Failures are
        logged and do not stop the remaining disposals. Calling ``dispose``
        again does nothing.
        """
        with self._state_lock:
            if self._disposed:
                return
            self._disposed = True
            children = list(self._children)

        for child in children:
            child.dispose()
        dispose_instances(self._drain())
        logger.debug("Disposed %s %s", type(self).__name__, id(self))

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.dispose()

    # endregion Scopes and Disposal

    # region Chain Hooks
    @abstractmethod
    def _container(self) -> Container:
        """Return the container at the root of this resolver's scope chain."""

    @abstractmethod
    def _lookup_chain(self) -> list[_Resolver]:
        """Return the resolvers searched for bindings, nearest first."""

    @abstractmethod
    def _drain(self) -> list[Any]:
        """Release owned instances and return them in disposal order."""

    # endregion Chain Hooks

    def _ensure_usable(self) -> None:
        if self._disposed:
            raise SimpleDIObjectDisposedError(self)

    def _take_disposables(self) -> list[Any]:
        with self._state_lock:
            disposables = list(reversed(self._disposables))
            self._disposables.clear()
        return disposables

    def _find(self, key: ServiceKey) -> tuple[_Resolver, tuple[BindingRecord, ...]] | None:
        for owner in self._lookup_chain():
            records = owner._registry.lookup(key)
            if records:
                return owner, records
        return None

    def _resolve_key(self, key: ServiceKey, implementation: type[Any] | None = None) -> Any:
        found = self._find(key)
        if found is None:
            raise SimpleDIUnresolvedDependencyError(key, self._known_keys())
        owner, records = found
        record = self._select(key, records, implementation)
        return self._produce(owner, record)

    def _select(
        self,
        key: ServiceKey,
        records: tuple[BindingRecord, ...],
        implementation: type[Any] | None,
    ) -> BindingRecord:
        if implementation is not None:
            matches = [record for record in records if record.implementation is implementation]
            if len(matches) != 1:
                raise SimpleDIAmbiguousOrMissingImplementationError(
                    key,
                    implementation,
                    len(matches),
                )
            return matches[0]

        for record in records:
            if record.guard is not None and self._guard_applies(record):
                return record
        for record in records:
            if record.guard is None:
                return record
        raise SimpleDIUnresolvedDependencyError(
            key,
            self._known_keys(),
            reason="no conditional binding applies",
        )

    def _guard_applies(self, record: BindingRecord) -> bool:
        return bool(call_user_code(record.guard, record.guard))

    def _produce(self, owner: _Resolver, record: BindingRecord) -> Any:
        builder = owner if record.lifetime is Lifetime.SINGLETON else self
        return builder._store.get_or_create(record, lambda: builder._build(record))

    def _build(self, record: BindingRecord) -> Any:
        if record.strategy is Strategy.INSTANCE:
            instance = record.instance
        else:
            with constructing(record.construction_target):
                instance = self._construct(record)
            if record.lifetime is not Lifetime.TRANSIENT:
                logger.debug("Created %s instance for %s", record.lifetime.value, record.key)

        decorators = self._decorators_for(record)
        if decorators:
            instance = self._decorator_composer.apply(
                record.key,
                instance,
                decorators,
                self._resolve_point,
            )
        return instance

    def _construct(self, record: BindingRecord) -> Any:
        if record.strategy is Strategy.FACTORY:
            return call_user_code(record.factory, record.factory, self)

        plan = self._plans.get(record.implementation)
        factory = compile_factory(plan, self._resolve_point)
        if not record.pooled:
            return factory()

        instance, reused = self._store.pool.acquire(record.implementation, factory)
        if reused:
            inject_members(plan, instance, self._resolve_point)
        return instance

    def _decorators_for(self, record: BindingRecord) -> list[DecoratorRecord]:
        for node in self._lookup_chain():
            decorators = node._registry.decorators(record.key)
            if decorators:
                return decorators
        return []

    def _resolve_point(self, point: InjectionPoint) -> Any:
        if point.collection:
            return self._resolve_collection(point.key.service)

        if point.has_default and self._find(point.key) is None:
            return MISSING
        if point.optional:
            try:
                return self._resolve_key(point.key)
            except (SimpleDICircularDependencyError, SimpleDIObjectDisposedError):
                raise
            except SimpleDIError as error:
                logger.warning(
                    "Skipping optional dependency '%s' (%s): %s",
                    point.name,
                    point.key,
                    error,
                )
                return MISSING

        return self._resolve_key(point.key)

    def _resolve_collection(self, service: Any) -> list[Any]:
        instances: list[Any] = []
        for owner in self._lookup_chain():
            for record in owner._registry.lookup_all(service):
                if record.guard is not None and not self._guard_applies(record):
                    continue
                instances.append(self._produce(owner, record))

        if not instances and not self._allows_empty(service):
            raise SimpleDIEmptyCollectionError(service)
        return instances

    def _allows_empty(self, service: Any) -> bool:
        for node in self._lookup_chain():
            declared = node._registry.declared_collections()
            if service in declared:
                return declared[service]
        return True

    def _known_keys(self) -> list[ServiceKey]:
        keys: dict[ServiceKey, None] = {}
        for node in self._lookup_chain():
            keys.update(dict.fromkeys(node._registry.keys()))
        return list(keys)

    def _evict_scoped(self, records: list[BindingRecord]) -> None:
        self._store.scoped.evict(record.binding_id for record in records)
        self._store.pool.evict(record.implementation for record in records if record.pooled)
        for child in list(self._children):
            child._evict_scoped(records)


class Container(_Resolver, BindingRegistrar):
    """Register bindings and resolve object graphs.

    Keys are usually abstract types, protocols, or ``typing.Annotated`` tokens
    carrying an ``Inject(name=...)`` marker. Bindings produce instances from a
    concrete type, a factory or a pre-built instance and cache them according
    to their ``Lifetime``. The container itself is the outermost scope.

    Bindings may be added and removed at any time. Registering an
    unconditional singleton replaces the previous unconditional bindings of
    the key and drops their cached instances.
    """

    def __init__(
        self,
        *,
        default_lifetime: Lifetime = Lifetime.TRANSIENT,
        lock_mode: LockMode = LockMode.THREAD,
        pool_max_size: int = DEFAULT_POOL_MAX_SIZE,
        parent: Container | None = None,
        registry: BindingRegistry | None = None,
        plans: ConstructionPlanCache | None = None,
    ) -> None:
        """Initialize a container.

        Args:
            default_lifetime: Lifetime of registrations that omit ``lifetime``.
            lock_mode: Locking around cached instance creation. Use
                ``LockMode.NONE`` only for single-threaded use.
            pool_max_size: Maximum number of idle instances kept per pooled type.
            parent: Container consulted for keys this container does not bind.
            registry: Pre-populated bindings, as produced by ``ContainerBuilder``.
            plans: Construction plan cache. Defaults to the process-wide cache.

        Examples:
            .. code-block:: python

                container = Container()

                app_container = Container(default_lifetime=Lifetime.SINGLETON)
                request_container = Container(parent=app_container)

        """
        super().__init__(
            store=LifetimeStore.create(lock_mode=lock_mode, pool_max_size=pool_max_size),
            lock_mode=lock_mode,
            plans=plans if plans is not None else CONSTRUCTION_PLANS,
        )
        self._registry = registry if registry is not None else BindingRegistry()
        self._default_lifetime = Lifetime(default_lifetime)
        self._parent = parent
        self._child_containers: weakref.WeakSet[Container] = weakref.WeakSet()
        if parent is not None:
            with parent._state_lock:
                parent._child_containers.add(self)

    @property
    def parent(self) -> Container | None:
        return self._parent

    def unbind(self, service: Any, name: str | None = None) -> bool:
        """Remove every binding of the key and drop its cached instances.

        Evicted instances are not disposed. Returns whether anything was removed.
        """
        self._ensure_usable()
        removed = self._registry.remove(ServiceKey.from_value(service, name))
        if removed:
            self._evict(removed)
        return bool(removed)

    def validate(self) -> None:
        """Check the bindings for cycles and incomplete decorator or collection setups.

        Raises:
            SimpleDICircularDependencyError: If type bindings depend on each other in a cycle.
            SimpleDIRegistrationError: If a decorator chain or declared collection is invalid.

        """
        validate_registry(self._registry, self._plans)

    def _container(self) -> Container:
        return self

    def _lookup_chain(self) -> list[_Resolver]:
        chain: list[_Resolver] = [self]
        if self._parent is not None:
            chain.extend(self._parent._lookup_chain())
        return chain

    def _drain(self) -> list[Any]:
        instances = self._take_disposables()
        instances.extend(self._store.scoped.drain())
        instances.extend(self._store.singletons.drain())
        self._store.pool.clear()
        return instances

    def _ensure_mutable(self) -> None:
        self._ensure_usable()

    def _binding_added(self, record: BindingRecord, replaced: list[BindingRecord]) -> None:
        if replaced:
            self._evict(replaced)

    def _decorator_added(self, record: DecoratorRecord) -> None:
        if not self.is_registered(record.key):
            msg = (
                f"Cannot decorate {record.key} with '{record.decorator.__qualname__}': "
                "the service has no base binding."
            )
            raise SimpleDIRegistrationError(msg)

    def _evict(self, records: list[BindingRecord]) -> None:
        self._store.evict(records)
        for child in list(self._children):
            child._evict_scoped(records)
        # Child containers cache scoped and pooled instances of inherited bindings.
        for child_container in list(self._child_containers):
            child_container._evict(records)
        logger.debug("Evicted cached instances of %d bindings", len(records))


class Scope(_Resolver, InstanceRegistrar):
    """A nested resolver owning its scoped instances.

    Scoped bindings resolve to one instance per scope. Singletons and
    transients come from the container as usual. Instances registered on a
    scope are visible to it and its child scopes only.

    Disposing a scope disposes its child scopes and the disposable scoped
    instances it created.
    """

    _instance_lifetime = Lifetime.SCOPED

    def __init__(self, parent: Container | Scope) -> None:
        container = parent._container()
        super().__init__(
            store=container._store.for_scope(container._lock_mode),
            lock_mode=container._lock_mode,
            plans=container._plans,
        )
        self._parent = parent
        self._root = container
        self._registry = BindingRegistry()

    @property
    def parent(self) -> Container | Scope:
        return self._parent

    def _container(self) -> Container:
        return self._root

    def _lookup_chain(self) -> list[_Resolver]:
        return [self, *self._parent._lookup_chain()]

    def _drain(self) -> list[Any]:
        instances = self._take_disposables()
        instances.extend(self._store.scoped.drain())
        self._store.pool.clear()
        return instances

    def _ensure_mutable(self) -> None:
        self._ensure_usable()
