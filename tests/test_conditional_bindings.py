"""Tests for guard-qualified bindings."""

from typing import Protocol

import pytest

from simpledi import (
    Container,
    SimpleDIConstructionError,
    SimpleDIUnresolvedDependencyError,
)


class Storage(Protocol):
    def kind(self) -> str: ...


class DiskStorage:
    def kind(self) -> str:
        return "disk"


class MemoryStorage:
    def kind(self) -> str:
        return "memory"


class CloudStorage:
    def kind(self) -> str:
        return "cloud"


class Uploader:
    def __init__(self, storage: Storage) -> None:
        self.storage = storage


class TestConditionalBindings:
    def test_first_passing_guard_wins(self, container: Container) -> None:
        container.register(Storage, DiskStorage)
        container.register(Storage, MemoryStorage, when=lambda: False)
        container.register(Storage, CloudStorage, when=lambda: True)

        assert container.resolve(Storage).kind() == "cloud"

    def test_guards_evaluated_in_registration_order(self, container: Container) -> None:
        evaluated: list[str] = []

        def guard(name: str, result: bool):  # noqa: ANN202
            def check() -> bool:
                evaluated.append(name)
                return result

            return check

        container.register(Storage, MemoryStorage, when=guard("memory", True))
        container.register(Storage, CloudStorage, when=guard("cloud", True))

        assert container.resolve(Storage).kind() == "memory"
        assert evaluated == ["memory"]

    def test_falls_back_to_unconditional_binding(self, container: Container) -> None:
        container.register(Storage, MemoryStorage, when=lambda: False)
        container.register(Storage, DiskStorage)

        assert container.resolve(Storage).kind() == "disk"

    def test_fails_without_passing_guard_or_fallback(self, container: Container) -> None:
        container.register(Storage, MemoryStorage, when=lambda: False)

        with pytest.raises(SimpleDIUnresolvedDependencyError, match="no conditional binding"):
            container.resolve(Storage)

    def test_transient_sees_environment_changes(self, container: Container) -> None:
        """Each resolution re-evaluates guards for dependency slots."""
        environment = {"mode": "test"}
        container.register(Storage, DiskStorage)
        container.register(Storage, MemoryStorage, when=lambda: environment["mode"] == "test")
        container.register(Uploader)

        first = container.resolve(Uploader)
        environment["mode"] = "prod"
        second = container.resolve(Uploader)

        assert first.storage.kind() == "memory"
        assert second.storage.kind() == "disk"

    def test_guard_error_is_wrapped(self, container: Container) -> None:
        def broken_guard() -> bool:
            msg = "no environment"
            raise KeyError(msg)

        container.register(Storage, MemoryStorage, when=broken_guard)

        with pytest.raises(SimpleDIConstructionError):
            container.resolve(Storage)

    def test_fluent_conditional_binding(self, container: Container) -> None:
        container.bind(Storage).to(DiskStorage)
        container.bind(Storage).when(lambda: True).to(CloudStorage)

        assert container.resolve(Storage).kind() == "cloud"
