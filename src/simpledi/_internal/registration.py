from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from typing import Any, Generic, Literal, TypeVar, cast

from typing_extensions import Self

from simpledi._internal.bindings import (
    BindingRecord,
    BindingRegistry,
    DecoratorRecord,
    Guard,
    Lifetime,
    Strategy,
)
from simpledi._internal.construction import ConstructionPlanCache
from simpledi._internal.lifetime_store import Poolable
from simpledi._internal.service_key import ServiceKey
from simpledi._internal.type_checks import implements, is_runtime_class
from simpledi.exceptions import SimpleDIRegistrationError

R = TypeVar("R", bound="BindingRegistrar")

LifetimeArg = Lifetime | Literal["from_container"]


class InstanceRegistrar:
    """Register pre-built instances. Shared by containers, builders and scopes."""

    _registry: BindingRegistry
    _instance_lifetime: Lifetime = Lifetime.SINGLETON

    def register_instance(
        self,
        instance: Any,
        *,
        provides: Any | Literal["infer"] = "infer",
        name: str | None = None,
        when: Guard | None = None,
    ) -> None:
        """Register a pre-built instance.

        Instances are never disposed by the container; their owner stays
        responsible for them.

        Args:
            instance: Value returned on resolution.
            provides: Service key to bind. Use ``"infer"`` to bind by ``type(instance)``.
            name: Optional binding name.
            when: Optional guard making the binding conditional.

        Raises:
            SimpleDIRegistrationError: If ``provides`` is ``None``.

        Examples:
            .. code-block:: python

                settings = Settings(api_url="https://api.example.com")
                container.register_instance(settings)
                container.register_instance(FileLogger(), provides=Logger, name="file")

        """
        provides_value = cast("Any", provides)
        if provides_value == "infer":
            provides_value = type(instance)
        elif provides_value is None:
            msg = "register_instance() parameter 'provides' must not be None; use 'infer'."
            raise SimpleDIRegistrationError(msg)

        self._add_record(
            BindingRecord(
                key=ServiceKey.from_value(provides_value, name),
                strategy=Strategy.INSTANCE,
                implementation=type(instance),
                instance=instance,
                lifetime=self._instance_lifetime,
                guard=when,
            ),
        )

    def register_instances(self, instances: Iterable[tuple[Any, Any]]) -> None:
        """Register several ``(service, instance)`` pairs in order.

        ``service`` may be a type, an annotated token or a ``ServiceKey``.
        """
        for service, instance in instances:
            self.register_instance(instance, provides=service)

    def _add_record(self, record: BindingRecord) -> None:
        self._ensure_mutable()
        replaced = self._registry.add(record)
        self._binding_added(record, replaced)

    def _ensure_mutable(self) -> None:
        """Raise when registrations are no longer accepted."""

    def _binding_added(self, record: BindingRecord, replaced: list[BindingRecord]) -> None:
        """React to a committed binding. ``replaced`` lists records it superseded."""


class BindingRegistrar(InstanceRegistrar):
    """Registration surface shared by ``Container`` and ``ContainerBuilder``."""

    _default_lifetime: Lifetime
    _plans: ConstructionPlanCache

    def register(
        self,
        service: Any,
        implementation: type[Any] | None = None,
        *,
        name: str | None = None,
        lifetime: LifetimeArg = "from_container",
        when: Guard | None = None,
        pooled: bool = False,
    ) -> None:
        """Bind ``service`` to a concrete type built through its construction plan.

        Args:
            service: Abstract service type, annotated token or ``ServiceKey``.
            implementation: Concrete type to build. Defaults to ``service`` itself.
            name: Optional binding name.
            lifetime: Reuse policy. Defaults to the container's ``default_lifetime``.
            when: Optional zero-argument guard making the binding conditional.
            pooled: Reuse released transient instances. Requires a ``reset`` method
                and a constructor without dependencies.

        Raises:
            SimpleDIRegistrationError: If the implementation is not a class, does
                not implement ``service``, or cannot be pooled.

        Examples:
            .. code-block:: python

                container.register(Logger, ConsoleLogger, lifetime=Lifetime.SINGLETON)
                container.register(Shape, Circle, name="circle")
                container.register(Database)

        """
        key = ServiceKey.from_value(service, name)
        concrete = key.service if implementation is None else implementation
        resolved_lifetime = self._resolve_lifetime(lifetime)
        self._validate_implementation(key, concrete)
        if pooled:
            self._validate_pooled(concrete, resolved_lifetime)

        self._add_record(
            BindingRecord(
                key=key,
                strategy=Strategy.TYPE,
                implementation=concrete,
                lifetime=resolved_lifetime,
                guard=when,
                pooled=pooled,
            ),
        )

    def register_factory(
        self,
        service: Any,
        factory: Callable[[Any], Any],
        *,
        name: str | None = None,
        lifetime: LifetimeArg = "from_container",
        when: Guard | None = None,
    ) -> None:
        """Bind ``service`` to a factory called with the resolving container or scope.

        Args:
            service: Abstract service type, annotated token or ``ServiceKey``.
            factory: Callable receiving the resolver and returning the instance.
            name: Optional binding name.
            lifetime: Reuse policy. Defaults to the container's ``default_lifetime``.
            when: Optional guard making the binding conditional.

        Raises:
            SimpleDIRegistrationError: If ``factory`` is not callable.

        Examples:
            .. code-block:: python

                container.register_factory(
                    Session,
                    lambda resolver: Session(resolver.resolve(Engine)),
                    lifetime=Lifetime.SCOPED,
                )

        """
        if not callable(factory):
            msg = f"Factory for {service!r} must be callable, got {factory!r}."
            raise SimpleDIRegistrationError(msg)

        self._add_record(
            BindingRecord(
                key=ServiceKey.from_value(service, name),
                strategy=Strategy.FACTORY,
                factory=factory,
                lifetime=self._resolve_lifetime(lifetime),
                guard=when,
            ),
        )

    def register_collection_member(
        self,
        service: Any,
        implementation: type[Any],
        *,
        lifetime: LifetimeArg = "from_container",
    ) -> None:
        """Add ``implementation`` to the collection returned by ``resolve_all(service)``.

        Collection members never answer plain ``resolve(service)`` calls.

        Raises:
            SimpleDIRegistrationError: If the implementation is not a class or does
                not implement ``service``.

        """
        key = ServiceKey(ServiceKey.from_value(service).service)
        self._validate_implementation(key, implementation)
        self._add_record(
            BindingRecord(
                key=key,
                strategy=Strategy.TYPE,
                implementation=implementation,
                lifetime=self._resolve_lifetime(lifetime),
                collection_member=True,
            ),
        )

    def declare_collection(self, service: Any, *, allow_empty: bool = False) -> None:
        """Declare whether ``resolve_all(service)`` may come back empty.

        Undeclared collections may be empty.
        """
        self._ensure_mutable()
        self._registry.declare_collection(
            ServiceKey.from_value(service).service,
            allow_empty=allow_empty,
        )

    def register_decorator(
        self,
        service: Any,
        decorator: type[Any],
        *,
        name: str | None = None,
        order: int = 0,
    ) -> None:
        """Wrap every resolution of ``service`` in ``decorator``.

        The decorator's constructor parameter typed as ``service`` receives the
        instance produced so far. Decorators apply in ascending ``order``; equal
        orders apply in registration order, so the last applied is outermost.

        Args:
            service: Decorated service type, annotated token or ``ServiceKey``.
            decorator: Concrete wrapper type.
            name: Optional binding name of the decorated service.
            order: Application order.

        Raises:
            SimpleDIRegistrationError: If ``decorator`` is not a class.

        Examples:
            .. code-block:: python

                container.register(Repository, SqlRepository)
                container.register_decorator(Repository, CachingRepository, order=1)
                container.register_decorator(Repository, LoggingRepository, order=2)

        """
        if not is_runtime_class(decorator):
            msg = f"Decorator for {service!r} must be a class, got {decorator!r}."
            raise SimpleDIRegistrationError(msg)

        self._ensure_mutable()
        record = DecoratorRecord(
            key=ServiceKey.from_value(service, name),
            decorator=decorator,
            order=order,
        )
        self._decorator_added(record)
        self._registry.add_decorator(record)

    def bind(self, service: Any, name: str | None = None) -> BindingHandle[Self]:
        """Start a fluent registration for ``service``.

        Examples:
            .. code-block:: python

                (
                    container.bind(Shape)
                    .named("square")
                    .to(Square, lifetime=Lifetime.SINGLETON)
                    .bind(Shape)
                    .named("circle")
                    .to(Circle)
                )

        """
        handle = BindingHandle(self, service)
        return handle if name is None else handle.named(name)

    def _decorator_added(self, record: DecoratorRecord) -> None:
        """React to a decorator about to be registered."""

    def _resolve_lifetime(self, lifetime: LifetimeArg) -> Lifetime:
        if lifetime == "from_container":
            return self._default_lifetime
        return Lifetime(lifetime)

    def _validate_implementation(self, key: ServiceKey, implementation: Any) -> None:
        if not inspect.isclass(implementation):
            msg = f"Implementation for {key} must be a class, got {implementation!r}."
            raise SimpleDIRegistrationError(msg)
        if not implements(implementation, key.service):
            msg = f"'{implementation.__qualname__}' does not implement {key}."
            raise SimpleDIRegistrationError(msg)

    def _validate_pooled(self, implementation: type[Any], lifetime: Lifetime) -> None:
        if lifetime is not Lifetime.TRANSIENT:
            msg = (
                f"Only transient bindings can be pooled, got {lifetime.value} for "
                f"'{implementation.__qualname__}'."
            )
            raise SimpleDIRegistrationError(msg)
        if not issubclass(implementation, Poolable):
            msg = f"Pooled type '{implementation.__qualname__}' must define a reset() method."
            raise SimpleDIRegistrationError(msg)
        plan = self._plans.get(implementation)
        if plan.constructor is not None and plan.constructor.parameters:
            names = ", ".join(point.name for point in plan.constructor.parameters)
            msg = (
                f"Pooled type '{implementation.__qualname__}' must not take constructor "
                f"dependencies ({names}); inject them as fields, properties or methods."
            )
            raise SimpleDIRegistrationError(msg)


class BindingHandle(Generic[R]):
    """Fluent registration of one service.

    Options (``named``, ``when``, ``pooled``) may be chained in any order.
    A terminal call (``to``, ``to_self``, ``to_factory`` or ``to_instance``)
    commits the binding and returns the registrar, so several bindings can be
    chained.
    """

    def __init__(self, registrar: R, service: Any) -> None:
        self._registrar = registrar
        self._service = service
        self._name: str | None = None
        self._guard: Guard | None = None
        self._pooled = False

    def named(self, name: str) -> Self:
        """Bind under ``name``."""
        self._name = name
        return self

    def when(self, guard: Guard) -> Self:
        """Make the binding conditional on a zero-argument ``guard``."""
        self._guard = guard
        return self

    def pooled(self) -> Self:
        """Reuse released instances. Only valid for transient type bindings."""
        self._pooled = True
        return self

    def to(self, implementation: type[Any], *, lifetime: LifetimeArg = "from_container") -> R:
        self._registrar.register(
            self._service,
            implementation,
            name=self._name,
            lifetime=lifetime,
            when=self._guard,
            pooled=self._pooled,
        )
        return self._registrar

    def to_self(self, *, lifetime: LifetimeArg = "from_container") -> R:
        return self.to(ServiceKey.from_value(self._service).service, lifetime=lifetime)

    def to_factory(
        self,
        factory: Callable[[Any], Any],
        *,
        lifetime: LifetimeArg = "from_container",
    ) -> R:
        self._reject_pooling("to_factory")
        self._registrar.register_factory(
            self._service,
            factory,
            name=self._name,
            lifetime=lifetime,
            when=self._guard,
        )
        return self._registrar

    def to_instance(self, instance: Any) -> R:
        self._reject_pooling("to_instance")
        self._registrar.register_instance(
            instance,
            provides=self._service,
            name=self._name,
            when=self._guard,
        )
        return self._registrar

    def _reject_pooling(self, terminal: str) -> None:
        if self._pooled:
            msg = f"pooled() only applies to type bindings, not {terminal}()."
            raise SimpleDIRegistrationError(msg)

