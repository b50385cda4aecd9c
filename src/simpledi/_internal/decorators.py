from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from simpledi._internal.bindings import DecoratorRecord
from simpledi._internal.construction import (
    ConstructionPlan,
    ConstructionPlanCache,
    InjectionPoint,
    compile_factory,
)
from simpledi._internal.resolution_context import constructing
from simpledi._internal.service_key import ServiceKey
from simpledi.exceptions import (
    SimpleDICircularDependencyError,
    SimpleDIObjectDisposedError,
    SimpleDIRegistrationError,
)

logger = logging.getLogger(__name__)


def wiring_parameter(plan: ConstructionPlan, key: ServiceKey) -> InjectionPoint | None:
    """Return the constructor parameter of a decorator that receives the wrapped instance."""
    if plan.constructor is None:
        return None
    return next(
        (
            point
            for point in plan.constructor.parameters
            if point.key.service == key.service and not point.collection
        ),
        None,
    )


class DecoratorComposer:
    """Wrap a resolved instance in its registered decorators.

    Decorators apply in ascending ``order``. Each one is built like any other
    type, except that its constructor parameter typed as the decorated service
    receives the previous stage. A decorator that cannot be built is logged and
    the undecorated instance is returned instead; only cycles and disposal
    errors propagate.
    """

    def __init__(self, plans: ConstructionPlanCache) -> None:
        self._plans = plans

    def apply(
        self,
        key: ServiceKey,
        instance: Any,
        decorators: list[DecoratorRecord],
        resolve: Callable[[InjectionPoint], Any],
    ) -> Any:
        """Return ``instance`` wrapped by every decorator in ``decorators``.

        Args:
            key: Service key the instance was resolved for.
            instance: The undecorated instance.
            decorators: Decorator records, already sorted by order.
            resolve: Resolves the decorators' other dependencies.

        """
        current = instance
        for record in decorators:
            try:
                current = self._wrap(key, current, record, resolve)
            except (SimpleDICircularDependencyError, SimpleDIObjectDisposedError):
                raise
            except Exception:
                logger.warning(
                    "Failed to apply decorator %s to %s; using the undecorated instance",
                    record.decorator.__qualname__,
                    key,
                    exc_info=True,
                )
                return instance
        return current

    def _wrap(
        self,
        key: ServiceKey,
        inner: Any,
        record: DecoratorRecord,
        resolve: Callable[[InjectionPoint], Any],
    ) -> Any:
        plan = self._plans.get(record.decorator)
        wiring = wiring_parameter(plan, key)
        if wiring is None:
            msg = (
                f"Decorator '{record.decorator.__qualname__}' has no constructor parameter "
                f"accepting the decorated service {key}."
            )
            raise SimpleDIRegistrationError(msg)

        def resolve_layer(point: InjectionPoint) -> Any:
            if point is wiring:
                return inner
            return resolve(point)

        with constructing(record.decorator):
            return compile_factory(plan, resolve_layer)()
