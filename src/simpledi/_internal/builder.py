from __future__ import annotations

import logging

from simpledi._internal.bindings import BindingRegistry, Lifetime
from simpledi._internal.construction import CONSTRUCTION_PLANS, ConstructionPlanCache
from simpledi._internal.container import Container
from simpledi._internal.lifetime_store import DEFAULT_POOL_MAX_SIZE
from simpledi._internal.lock_mode import LockMode
from simpledi._internal.registration import BindingRegistrar
from simpledi._internal.validation import validate_registry
from simpledi.exceptions import SimpleDIRegistrationError

logger = logging.getLogger(__name__)


class ContainerBuilder(BindingRegistrar):
    """Collect bindings, validate them and produce a ready ``Container``.

    The builder offers the same registration methods as ``Container``.
    Unlike the container it accepts decorators before their base binding,
    since the whole set is validated at once by ``build``.

    Examples:
        .. code-block:: python

            builder = ContainerBuilder(default_lifetime=Lifetime.SINGLETON)
            builder.register(Logger, ConsoleLogger)
            builder.register_decorator(Logger, TimestampLogger)
            builder.bind(Shape).named("circle").to(Circle)

            container = builder.build()

    """

    def __init__(
        self,
        *,
        default_lifetime: Lifetime = Lifetime.TRANSIENT,
        lock_mode: LockMode = LockMode.THREAD,
        pool_max_size: int = DEFAULT_POOL_MAX_SIZE,
        plans: ConstructionPlanCache | None = None,
    ) -> None:
        """Initialize a builder.

        Args:
            default_lifetime: Lifetime of registrations that omit ``lifetime``.
            lock_mode: Lock mode of the built container.
            pool_max_size: Maximum number of idle instances kept per pooled type.
            plans: Construction plan cache. Defaults to the process-wide cache.

        """
        self._registry = BindingRegistry()
        self._default_lifetime = Lifetime(default_lifetime)
        self._lock_mode = lock_mode
        self._pool_max_size = pool_max_size
        self._plans = plans if plans is not None else CONSTRUCTION_PLANS
        self._built = False

    def build(self, *, validate: bool = True, parent: Container | None = None) -> Container:
        """Validate the collected bindings and return a container serving them.

        A builder builds once; later registrations raise.

        Args:
            validate: Run the static checks before building.
            parent: Container consulted for keys the built container does not bind.

        Raises:
            SimpleDICircularDependencyError: If type bindings depend on each other in a cycle.
            SimpleDIRegistrationError: If a decorator chain or declared collection is
                invalid, or the builder was already built.

        """
        self._ensure_mutable()
        if validate:
            validate_registry(self._registry, self._plans)
        self._built = True
        logger.debug("Built container with %d bindings", len(self._registry))
        return Container(
            default_lifetime=self._default_lifetime,
            lock_mode=self._lock_mode,
            pool_max_size=self._pool_max_size,
            parent=parent,
            registry=self._registry,
            plans=self._plans,
        )

    def _ensure_mutable(self) -> None:
        if self._built:
            msg = "ContainerBuilder.build() was already called; register on the container instead."
            raise SimpleDIRegistrationError(msg)
