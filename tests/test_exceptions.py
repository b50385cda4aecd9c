"""Tests for the exception hierarchy and diagnostic attributes."""

import pytest

from simpledi import (
    Container,
    SimpleDIAmbiguousOrMissingImplementationError,
    SimpleDICircularDependencyError,
    SimpleDIConstructionError,
    SimpleDIEmptyCollectionError,
    SimpleDIError,
    SimpleDINoConstructorError,
    SimpleDIObjectDisposedError,
    SimpleDIRegistrationError,
    SimpleDIUnresolvedDependencyError,
    ServiceKey,
)


class Greeter:
    pass


class FailingGreeter:
    def __init__(self) -> None:
        msg = "missing locale"
        raise LookupError(msg)


@pytest.mark.parametrize(
    "error_type",
    [
        SimpleDIAmbiguousOrMissingImplementationError,
        SimpleDICircularDependencyError,
        SimpleDIConstructionError,
        SimpleDIEmptyCollectionError,
        SimpleDINoConstructorError,
        SimpleDIObjectDisposedError,
        SimpleDIRegistrationError,
        SimpleDIUnresolvedDependencyError,
    ],
)
def test_every_error_derives_from_base(error_type: type[Exception]) -> None:
    assert issubclass(error_type, SimpleDIError)


class TestUnresolvedDependencyError:
    def test_carries_key_and_registered_keys(self, container: Container) -> None:
        container.register(Greeter, name="formal")

        with pytest.raises(SimpleDIUnresolvedDependencyError) as exc_info:
            container.resolve(Greeter)

        assert exc_info.value.service_key == ServiceKey(Greeter)
        assert ServiceKey(Greeter, "formal") in exc_info.value.registered_keys
        assert "Greeter['formal']" in str(exc_info.value)

    def test_message_without_registrations(self) -> None:
        error = SimpleDIUnresolvedDependencyError(ServiceKey(Greeter), reason="no binding")

        assert str(error) == "Unable to resolve Greeter (no binding). Registered keys: <none>"


class TestConstructionError:
    def test_wraps_user_exception(self, container: Container) -> None:
        container.register(FailingGreeter)

        with pytest.raises(SimpleDIConstructionError) as exc_info:
            container.resolve(FailingGreeter)

        assert exc_info.value.implementation is FailingGreeter
        assert isinstance(exc_info.value.error, LookupError)
        assert isinstance(exc_info.value.__cause__, LookupError)
        assert "missing locale" in str(exc_info.value)


class TestMessages:
    def test_circular_dependency_message(self) -> None:
        error = SimpleDICircularDependencyError([Greeter, FailingGreeter, Greeter])

        assert str(error) == (
            "Circular dependency detected: Greeter -> FailingGreeter -> Greeter"
        )

    def test_ambiguous_implementation_message(self) -> None:
        error = SimpleDIAmbiguousOrMissingImplementationError(ServiceKey(Greeter), Greeter, 2)

        assert error.matches == 2
        assert str(error).startswith("2 bindings found for implementation 'Greeter'")

    def test_missing_implementation_message(self) -> None:
        error = SimpleDIAmbiguousOrMissingImplementationError(ServiceKey(Greeter), Greeter, 0)

        assert str(error).startswith("No binding found")

    def test_disposed_message(self, container: Container) -> None:
        container.dispose()

        with pytest.raises(SimpleDIObjectDisposedError, match="Container has already been"):
            container.resolve(Greeter)
