from simpledi._internal.bindings import Lifetime
from simpledi._internal.builder import ContainerBuilder
from simpledi._internal.construction import ConstructionPlan, ConstructionPlanCache
from simpledi._internal.container import Container, Scope
from simpledi._internal.lifetime_store import Disposable, Poolable
from simpledi._internal.lock_mode import LockMode
from simpledi._internal.markers import All, Inject, Injected, Maybe, constructor, inject
from simpledi._internal.registration import BindingHandle
from simpledi._internal.service_key import ServiceKey
from simpledi.discovery import discover, injectable, install
from simpledi.exceptions import (
    SimpleDIAmbiguousOrMissingImplementationError,
    SimpleDICircularDependencyError,
    SimpleDIConstructionError,
    SimpleDIEmptyCollectionError,
    SimpleDIError,
    SimpleDINoConstructorError,
    SimpleDIObjectDisposedError,
    SimpleDIRegistrationError,
    SimpleDIUnresolvedDependencyError,
)

__all__ = [
    "All",
    "BindingHandle",
    "ConstructionPlan",
    "ConstructionPlanCache",
    "Container",
    "ContainerBuilder",
    "Disposable",
    "Inject",
    "Injected",
    "Lifetime",
    "LockMode",
    "Maybe",
    "Poolable",
    "Scope",
    "ServiceKey",
    "SimpleDIAmbiguousOrMissingImplementationError",
    "SimpleDICircularDependencyError",
    "SimpleDIConstructionError",
    "SimpleDIEmptyCollectionError",
    "SimpleDIError",
    "SimpleDINoConstructorError",
    "SimpleDIObjectDisposedError",
    "SimpleDIRegistrationError",
    "SimpleDIUnresolvedDependencyError",
    "constructor",
    "discover",
    "inject",
    "injectable",
    "install",
]
