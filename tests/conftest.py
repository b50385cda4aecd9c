"""Shared pytest fixtures for simpledi tests."""

import pytest

from simpledi import Container, ContainerBuilder, Lifetime
from simpledi._internal.construction import ConstructionPlanCache


@pytest.fixture()
def container() -> Container:
    """Default container with transient default lifetime."""
    return Container()


@pytest.fixture()
def container_singleton() -> Container:
    """Container with lifetime singleton as default."""
    return Container(default_lifetime=Lifetime.SINGLETON)


@pytest.fixture()
def builder() -> ContainerBuilder:
    """Empty container builder."""
    return ContainerBuilder()


@pytest.fixture()
def plans() -> ConstructionPlanCache:
    """Construction plan cache isolated from the process-wide one."""
    return ConstructionPlanCache()
