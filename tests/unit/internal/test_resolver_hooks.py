import inspect

import pytest

from simpledi._internal.container import Container, Scope, _Resolver


def test_resolver_chain_hooks_are_abstract() -> None:
    assert inspect.isabstract(_Resolver)
    assert _Resolver.__abstractmethods__ == frozenset({"_container", "_lookup_chain", "_drain"})


def test_resolver_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        _Resolver()  # type: ignore[abstract, call-arg]


def test_container_and_scope_implement_every_hook() -> None:
    assert not inspect.isabstract(Container)
    assert not inspect.isabstract(Scope)
