from __future__ import annotations

import logging
from typing import Any

from simpledi._internal.bindings import BindingRecord, BindingRegistry, Strategy
from simpledi._internal.construction import ConstructionPlanCache
from simpledi._internal.decorators import wiring_parameter
from simpledi.exceptions import (
    SimpleDICircularDependencyError,
    SimpleDIError,
    SimpleDIRegistrationError,
)

logger = logging.getLogger(__name__)


def validate_registry(registry: BindingRegistry, plans: ConstructionPlanCache) -> None:
    """Run every static check over ``registry``.

    Args:
        registry: Bindings to check.
        plans: Cache used to inspect constructor and member dependencies.

    Raises:
        SimpleDICircularDependencyError: If type bindings depend on each other in a cycle.
        SimpleDIRegistrationError: If a decorator chain or declared collection is invalid.

    """
    _check_decorators(registry, plans)
    _check_collections(registry)
    _DependencyGraph(registry, plans).check_acyclic()
    logger.debug("Validated %d bindings", len(registry))


def _check_decorators(registry: BindingRegistry, plans: ConstructionPlanCache) -> None:
    for key in registry.decorated_keys():
        if not registry.contains(key):
            msg = f"Decorators are registered for {key}, but the service has no base binding."
            raise SimpleDIRegistrationError(msg)
        for record in registry.decorators(key):
            if wiring_parameter(plans.get(record.decorator), key) is None:
                msg = (
                    f"Decorator '{record.decorator.__qualname__}' for {key} has no constructor "
                    "parameter accepting the decorated service."
                )
                raise SimpleDIRegistrationError(msg)


def _check_collections(registry: BindingRegistry) -> None:
    for service, allow_empty in registry.declared_collections().items():
        if not allow_empty and not registry.lookup_all(service):
            name = getattr(service, "__qualname__", repr(service))
            msg = f"Collection of '{name}' is declared non-empty but has no members."
            raise SimpleDIRegistrationError(msg)


class _DependencyGraph:
    """Dependency edges between type bindings, following each key's default binding.

    Factories and instances are opaque and contribute no edges. Keys bound
    only by a parent container or a scope are unknown here and skipped.
    """

    def __init__(self, registry: BindingRegistry, plans: ConstructionPlanCache) -> None:
        self._registry = registry
        self._plans = plans

    def check_acyclic(self) -> None:
        done: set[Any] = set()
        for record in self._registry.records():
            if record.strategy is Strategy.TYPE:
                self._visit(record.implementation, [], done)

    def _visit(self, implementation: Any, path: list[Any], done: set[Any]) -> None:
        if implementation in done:
            return
        if implementation in path:
            raise SimpleDICircularDependencyError([*path, implementation])

        path.append(implementation)
        for dependency in self._dependencies(implementation):
            self._visit(dependency, path, done)
        path.pop()
        done.add(implementation)

    def _dependencies(self, implementation: Any) -> list[Any]:
        try:
            plan = self._plans.get(implementation)
        except SimpleDIError:
            return []

        targets: list[Any] = []
        for point in plan.dependencies():
            if point.collection:
                records = self._registry.lookup_all(point.key.service)
            else:
                default = _default_record(self._registry.lookup(point.key))
                records = [default] if default is not None else []
            targets.extend(
                record.implementation for record in records if record.strategy is Strategy.TYPE
            )
        return targets


def _default_record(records: tuple[BindingRecord, ...]) -> BindingRecord | None:
    return next((record for record in records if record.guard is None), None)
