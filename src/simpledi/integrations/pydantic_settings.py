"""Bind application configuration objects built with Pydantic.

``pydantic-settings`` is optional: install the ``settings`` extra to use
``register_settings``. Without it ``is_pydantic_settings_subclass`` returns
``False`` for every candidate.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from simpledi._internal.bindings import Lifetime
from simpledi._internal.registration import BindingRegistrar, InstanceRegistrar
from simpledi._internal.service_key import ServiceKey
from simpledi._internal.type_checks import is_runtime_class, unwrap_optional
from simpledi.exceptions import SimpleDIRegistrationError

logger = logging.getLogger(__name__)


def _load_base_settings(module_name: str) -> type[Any] | None:
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    base_settings = getattr(module, "BaseSettings", None)
    if isinstance(base_settings, type):
        return base_settings
    return None


def _build_settings_bases() -> tuple[type[Any], ...]:
    base = _load_base_settings("pydantic_settings")
    return (base,) if base is not None else ()


SETTINGS_BASES: tuple[type[Any], ...] = _build_settings_bases()


def is_pydantic_settings_subclass(candidate: object) -> bool:
    """Return whether a class is a ``pydantic_settings.BaseSettings`` model.

    Args:
        candidate: Object to test.

    Returns:
        ``True`` when ``candidate`` is a runtime class and subclasses
        ``BaseSettings``; otherwise ``False``.

    """
    if not is_runtime_class(candidate):
        return False
    try:
        return any(issubclass(candidate, base) for base in SETTINGS_BASES)
    except TypeError:
        return False


def register_settings(
    registrar: BindingRegistrar,
    settings_type: type[Any],
    *,
    provides: Any | None = None,
    name: str | None = None,
) -> None:
    """Bind a settings model as a lazily built singleton.

    The model is instantiated without arguments on first resolution, so it
    reads its values from the environment at that point.

    Args:
        registrar: Container or builder receiving the binding.
        settings_type: ``BaseSettings`` subclass.
        provides: Service key to bind. Defaults to ``settings_type``.
        name: Optional binding name.

    Raises:
        SimpleDIRegistrationError: If ``settings_type`` is not a settings model.

    Examples:
        .. code-block:: python

            class AppSettings(BaseSettings):
                database_url: str = "sqlite://"


            register_settings(container, AppSettings)
            settings = container.resolve(AppSettings)

    """
    if not is_pydantic_settings_subclass(settings_type):
        msg = f"{settings_type!r} is not a pydantic_settings.BaseSettings subclass."
        raise SimpleDIRegistrationError(msg)

    registrar.register_factory(
        settings_type if provides is None else provides,
        lambda _: settings_type(),
        name=name,
        lifetime=Lifetime.SINGLETON,
    )


def load_configuration(registrar: InstanceRegistrar, config: Any) -> list[ServiceKey]:
    """Bind every populated field of a Pydantic model as a named instance.

    Each field value is registered under its declared type (``X | None``
    binds ``X``) with the field name as binding name, so a consumer can ask
    for ``Annotated[Database, Inject(name="primary")]``. Fields holding
    ``None`` are skipped.

    Args:
        registrar: Container, builder or scope receiving the instances.
        config: A Pydantic model instance.

    Returns:
        The keys that were bound, in field order.

    Raises:
        SimpleDIRegistrationError: If ``config`` is not a Pydantic model.

    """
    fields = getattr(type(config), "model_fields", None)
    if not isinstance(fields, dict):
        msg = f"load_configuration() expects a Pydantic model, got {type(config).__qualname__}."
        raise SimpleDIRegistrationError(msg)

    keys: list[ServiceKey] = []
    for field_name, field_info in fields.items():
        value = getattr(config, field_name)
        if value is None:
            continue
        service, _ = unwrap_optional(field_info.annotation)
        key = ServiceKey(service, field_name)
        registrar.register_instance(value, provides=key)
        keys.append(key)
    logger.debug("Loaded %d configuration values from %s", len(keys), type(config).__qualname__)
    return keys


__all__ = [
    "SETTINGS_BASES",
    "is_pydantic_settings_subclass",
    "load_configuration",
    "register_settings",
]
