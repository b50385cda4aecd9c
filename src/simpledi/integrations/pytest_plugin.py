"""Pytest fixtures for tests that need a SimpleDI container.

The plugin is registered through the ``pytest11`` entry point. Override
``simpledi_builder`` in a ``conftest.py`` to share registrations across
tests:

.. code-block:: python

    @pytest.fixture()
    def simpledi_builder() -> ContainerBuilder:
        builder = ContainerBuilder()
        builder.register(Clock, FrozenClock, lifetime=Lifetime.SINGLETON)
        return builder

"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from simpledi._internal.builder import ContainerBuilder
from simpledi._internal.container import Container


@pytest.fixture()
def simpledi_builder() -> ContainerBuilder:
    """Create an empty per-test builder."""
    return ContainerBuilder()


@pytest.fixture()
def simpledi_container(simpledi_builder: ContainerBuilder) -> Iterator[Container]:
    """Build the per-test container and dispose it at teardown.

    Yields:
        The container built from ``simpledi_builder``.

    """
    container = simpledi_builder.build()
    yield container
    container.dispose()
