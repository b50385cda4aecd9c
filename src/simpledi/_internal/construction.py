from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from inspect import Parameter
from typing import Any, ClassVar, get_origin, get_type_hints

from simpledi._internal.markers import (
    find_all_marker,
    find_inject_marker,
    is_marked_constructor,
    is_marked_member,
)
from simpledi._internal.service_key import ServiceKey
from simpledi._internal.type_checks import unwrap_optional
from simpledi.exceptions import (
    SimpleDIConstructionError,
    SimpleDIError,
    SimpleDINoConstructorError,
    SimpleDIRegistrationError,
)

logger = logging.getLogger(__name__)

MISSING: Any = object()
"""Returned by a dependency resolver when an optional slot should be skipped."""

_MISSING_ANNOTATION: Any = object()
_SKIPPED_KINDS = {Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD}

DependencyResolver = Callable[["InjectionPoint"], Any]


@dataclass(frozen=True, slots=True)
class InjectionPoint:
    """Describe one slot the container fills: a parameter, a field or a property."""

    name: str
    key: ServiceKey
    optional: bool = False
    default: Any = MISSING
    collection: bool = False
    positional_only: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True, slots=True)
class ConstructorInfo:
    """Describe the selected public constructor of a concrete type."""

    name: str
    """``__init__`` or the name of a ``@constructor`` classmethod."""
    parameters: tuple[InjectionPoint, ...]
    uninferable: tuple[str, ...] = ()
    """Required parameters without a usable annotation."""

    @property
    def arity(self) -> int:
        return len(self.parameters) + len(self.uninferable)


@dataclass(frozen=True, slots=True)
class MethodInjection:
    """Describe a method called with resolved arguments after construction."""

    name: str
    parameters: tuple[InjectionPoint, ...]


@dataclass(frozen=True, slots=True)
class ConstructionPlan:
    """Cached metadata describing how to build and inject a concrete type."""

    implementation: type[Any]
    constructor: ConstructorInfo | None
    fields: tuple[InjectionPoint, ...] = ()
    properties: tuple[InjectionPoint, ...] = ()
    methods: tuple[MethodInjection, ...] = ()

    @property
    def has_members(self) -> bool:
        return bool(self.fields or self.properties or self.methods)

    def dependencies(self) -> list[InjectionPoint]:
        """Return every injection point, constructor parameters first."""
        points = list(self.constructor.parameters) if self.constructor is not None else []
        points.extend(self.fields)
        points.extend(self.properties)
        for method in self.methods:
            points.extend(method.parameters)
        return points


class ConstructionPlanCache:
    """Compute and memoize construction plans per concrete type.

    Plans are intrinsic to a type, so one cache is shared by every container
    of the process. Each type is inspected at most once; concurrent first
    requests for the same type wait for a single computation.
    """

    def __init__(self) -> None:
        self._plans: dict[type[Any], ConstructionPlan] = {}
        self._lock = threading.Lock()
        self.computations = 0

    def get(self, implementation: type[Any]) -> ConstructionPlan:
        """Return the construction plan of ``implementation``.

        Args:
            implementation: Concrete class to inspect.

        Raises:
            SimpleDIRegistrationError: If ``implementation`` is not a class.

        """
        plan = self._plans.get(implementation)
        if plan is not None:
            return plan

        with self._lock:
            plan = self._plans.get(implementation)
            if plan is None:
                plan = _PlanBuilder(implementation).build()
                self._plans[implementation] = plan
                self.computations += 1
                logger.debug("Computed construction plan for %s", implementation.__qualname__)
        return plan

    def __contains__(self, implementation: object) -> bool:
        return implementation in self._plans

    def __len__(self) -> int:
        return len(self._plans)


CONSTRUCTION_PLANS = ConstructionPlanCache()
"""The process-wide construction plan cache used by default."""


def compile_factory(plan: ConstructionPlan, resolve: DependencyResolver) -> Callable[[], Any]:
    """Build a reusable zero-argument factory for ``plan``.

    Each call resolves every slot through ``resolve`` again, so a transient
    factory sees the bindings (and guard outcomes) current at call time.

    Args:
        plan: Construction plan of the concrete type.
        resolve: Callback returning the value for a slot, or ``MISSING`` to skip it.

    """
    implementation = plan.implementation
    constructor = plan.constructor

    def factory() -> Any:
        if constructor is None:
            raise SimpleDINoConstructorError(implementation)
        if constructor.uninferable:
            names = ", ".join(f"'{name}'" for name in constructor.uninferable)
            msg = (
                f"Unable to infer dependencies for required parameters {names} of "
                f"'{implementation.__qualname__}'. Add type annotations."
            )
            raise SimpleDIRegistrationError(msg)

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for point in constructor.parameters:
            value = resolve(point)
            if value is MISSING:
                value = point.default if point.has_default else None
            if point.positional_only:
                args.append(value)
            else:
                kwargs[point.name] = value

        target = (
            implementation
            if constructor.name == "__init__"
            else getattr(implementation, constructor.name)
        )
        instance = call_user_code(implementation, target, *args, **kwargs)
        inject_members(plan, instance, resolve)
        return instance

    return factory


def inject_members(plan: ConstructionPlan, instance: Any, resolve: DependencyResolver) -> None:
    """Fill fields, then properties, then call marked methods of ``instance``.

    Args:
        plan: Construction plan of ``type(instance)``.
        instance: Object whose members receive dependencies.
        resolve: Callback returning the value for a slot, or ``MISSING`` to skip it.

    """
    implementation = plan.implementation
    for point in (*plan.fields, *plan.properties):
        value = resolve(point)
        if value is MISSING:
            continue
        call_user_code(implementation, setattr, instance, point.name, value)

    for method in plan.methods:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        skipped = False
        for point in method.parameters:
            value = resolve(point)
            if value is MISSING:
                if not point.has_default:
                    skipped = True
                    break
                value = point.default
            if point.positional_only:
                args.append(value)
            else:
                kwargs[point.name] = value
        if skipped:
            logger.warning(
                "Skipping injection method '%s' of %s: an optional argument is unavailable",
                method.name,
                implementation.__qualname__,
            )
            continue
        call_user_code(implementation, getattr(instance, method.name), *args, **kwargs)


def call_user_code(
    implementation: Any,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Call user code, wrapping anything but SimpleDI errors in ``SimpleDIConstructionError``."""
    try:
        return func(*args, **kwargs)
    except SimpleDIError:
        raise
    except Exception as error:
        raise SimpleDIConstructionError(implementation, error) from error


class _PlanBuilder:
    _OBJECT_MEMBERS: ClassVar[frozenset[str]] = frozenset(vars(object))

    def __init__(self, implementation: type[Any]) -> None:
        if not inspect.isclass(implementation):
            msg = f"Construction plans require a class, got {implementation!r}."
            raise SimpleDIRegistrationError(msg)
        self._implementation = implementation

    def build(self) -> ConstructionPlan:
        constructor = self._select_constructor()
        constructor_names = (
            {point.name for point in constructor.parameters} if constructor is not None else set()
        )
        fields = tuple(
            point for point in self._fields() if point.name not in constructor_names
        )
        properties, methods = self._members()
        return ConstructionPlan(
            implementation=self._implementation,
            constructor=constructor,
            fields=fields,
            properties=properties,
            methods=methods,
        )

    def _select_constructor(self) -> ConstructorInfo | None:
        candidates: list[ConstructorInfo] = []
        if not self._is_abstract():
            candidates.append(
                self._callable_info(
                    name="__init__",
                    func=self._implementation,
                    hints_source=self._implementation.__init__,
                ),
            )
        for name, member in self._own_and_inherited_attributes():
            if isinstance(member, classmethod) and is_marked_constructor(member):
                candidates.append(
                    self._callable_info(
                        name=name,
                        func=getattr(self._implementation, name),
                        hints_source=member.__func__,
                    ),
                )

        if not candidates:
            return None
        # max() keeps the first of equal arities, so __init__ wins ties.
        return max(candidates, key=lambda info: info.arity)

    def _is_abstract(self) -> bool:
        return inspect.isabstract(self._implementation) or bool(
            getattr(self._implementation, "_is_protocol", False),
        )

    def _callable_info(
        self,
        *,
        name: str,
        func: Callable[..., Any],
        hints_source: Callable[..., Any],
    ) -> ConstructorInfo:
        try:
            parameters = tuple(inspect.signature(func).parameters.values())
        except (TypeError, ValueError):
            parameters = ()
        points, uninferable = self._injection_points(parameters, hints_source)
        return ConstructorInfo(name=name, parameters=points, uninferable=uninferable)

    def _injection_points(
        self,
        parameters: tuple[Parameter, ...],
        hints_source: Callable[..., Any],
    ) -> tuple[tuple[InjectionPoint, ...], tuple[str, ...]]:
        annotations = _resolved_type_hints(hints_source)
        points: list[InjectionPoint] = []
        uninferable: list[str] = []
        for parameter in parameters:
            if parameter.kind in _SKIPPED_KINDS:
                continue
            annotation = annotations.get(parameter.name, _MISSING_ANNOTATION)
            raw_annotation = parameter.annotation
            if (
                annotation is _MISSING_ANNOTATION
                and raw_annotation is not Parameter.empty
                and not isinstance(raw_annotation, str)
            ):
                annotation = raw_annotation
            if annotation is _MISSING_ANNOTATION:
                if parameter.default is Parameter.empty:
                    uninferable.append(parameter.name)
                continue
            default = MISSING if parameter.default is Parameter.empty else parameter.default
            points.append(
                _injection_point(
                    name=parameter.name,
                    annotation=annotation,
                    default=default,
                    positional_only=parameter.kind is Parameter.POSITIONAL_ONLY,
                ),
            )
        return tuple(points), tuple(uninferable)

    def _fields(self) -> list[InjectionPoint]:
        annotations = _resolved_type_hints(self._implementation)
        points: list[InjectionPoint] = []
        for name, annotation in annotations.items():
            if find_inject_marker(annotation) is None and find_all_marker(annotation) is None:
                continue
            default = getattr(self._implementation, name, MISSING)
            points.append(_injection_point(name=name, annotation=annotation, default=default))
        return points

    def _members(self) -> tuple[tuple[InjectionPoint, ...], tuple[MethodInjection, ...]]:
        properties: list[InjectionPoint] = []
        methods: list[MethodInjection] = []
        for name, member in self._own_and_inherited_attributes():
            if isinstance(member, property):
                if member.fset is not None and is_marked_member(member.fset):
                    properties.append(self._property_point(name, member.fset))
            elif inspect.isfunction(member) and is_marked_member(member):
                parameters = tuple(inspect.signature(member).parameters.values())[1:]
                points, uninferable = self._injection_points(parameters, member)
                if uninferable:
                    names = ", ".join(uninferable)
                    msg = (
                        f"Injection method '{self._implementation.__qualname__}.{name}' has "
                        f"parameters without annotations: {names}."
                    )
                    raise SimpleDIRegistrationError(msg)
                methods.append(MethodInjection(name=name, parameters=points))
        return tuple(properties), tuple(methods)

    def _property_point(self, name: str, setter: Callable[..., Any]) -> InjectionPoint:
        parameters = tuple(inspect.signature(setter).parameters.values())[1:]
        points, _ = self._injection_points(parameters, setter)
        if len(points) != 1:
            msg = (
                f"Injectable property '{self._implementation.__qualname__}.{name}' needs an "
                "annotated setter value parameter."
            )
            raise SimpleDIRegistrationError(msg)
        point = points[0]
        return InjectionPoint(
            name=name,
            key=point.key,
            optional=point.optional,
            collection=point.collection,
        )

    def _own_and_inherited_attributes(self) -> list[tuple[str, Any]]:
        seen: set[str] = set()
        attributes: list[tuple[str, Any]] = []
        for klass in self._implementation.__mro__:
            if klass is object:
                continue
            for name, member in vars(klass).items():
                if name in seen or name in self._OBJECT_MEMBERS:
                    continue
                seen.add(name)
                attributes.append((name, member))
        return attributes


def _injection_point(
    *,
    name: str,
    annotation: Any,
    default: Any = MISSING,
    positional_only: bool = False,
) -> InjectionPoint:
    annotation, nullable = unwrap_optional(annotation)
    all_marker = find_all_marker(annotation)
    if all_marker is not None:
        return InjectionPoint(
            name=name,
            key=ServiceKey(all_marker.service),
            default=default,
            collection=True,
            positional_only=positional_only,
        )
    marker = find_inject_marker(annotation)
    return InjectionPoint(
        name=name,
        key=ServiceKey.from_value(annotation),
        optional=nullable or (marker is not None and marker.optional),
        default=default,
        positional_only=positional_only,
    )


def _resolved_type_hints(source: Any) -> dict[str, Any]:
    try:
        hints = get_type_hints(source, include_extras=True)
    except (AttributeError, NameError, TypeError):
        return {}
    hints.pop("return", None)
    return {name: hint for name, hint in hints.items() if get_origin(hint) is not ClassVar}
