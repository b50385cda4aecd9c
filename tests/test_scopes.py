"""Tests for scopes, scoped lifetimes and disposal."""

import pytest

from simpledi import (
    Container,
    Lifetime,
    Scope,
    SimpleDIObjectDisposedError,
    SimpleDIRegistrationError,
)

disposed_order: list[str] = []


class Session:
    def __init__(self) -> None:
        self.closed = False

    def dispose(self) -> None:
        self.closed = True
        disposed_order.append("session")


class Repository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def dispose(self) -> None:
        disposed_order.append("repository")


class Engine:
    def __init__(self) -> None:
        self.closed = False

    def dispose(self) -> None:
        self.closed = True
        disposed_order.append("engine")


class Cache:
    def __init__(self, session: Session) -> None:
        self.session = session


class BrokenResource:
    def dispose(self) -> None:
        msg = "cannot close"
        raise RuntimeError(msg)


class RequestContext:
    def __init__(self, path: str) -> None:
        self.path = path


class Handler:
    def __init__(self, context: RequestContext) -> None:
        self.context = context


@pytest.fixture(autouse=True)
def _reset_disposed_order() -> None:
    disposed_order.clear()


class TestScopedLifetime:
    def test_same_scope_returns_same_instance(self, container: Container) -> None:
        """A scope resolving a scoped key twice returns the same instance."""
        container.register(Session, lifetime=Lifetime.SCOPED)

        with container.create_scope() as scope:
            assert scope.resolve(Session) is scope.resolve(Session)

    def test_different_scopes_never_share(self, container: Container) -> None:
        """Distinct scopes build distinct scoped instances."""
        container.register(Session, lifetime=Lifetime.SCOPED)

        with container.create_scope() as first, container.create_scope() as second:
            assert first.resolve(Session) is not second.resolve(Session)

    def test_nested_scope_has_its_own_instances(self, container: Container) -> None:
        """A child scope shares bindings but not scoped instances with its parent."""
        container.register(Session, lifetime=Lifetime.SCOPED)

        with container.create_scope() as outer:
            outer_session = outer.resolve(Session)
            with outer.create_scope() as inner:
                assert inner.resolve(Session) is not outer_session
                assert inner.resolve(Session) is inner.resolve(Session)

    def test_container_acts_as_outermost_scope(self, container: Container) -> None:
        """Scoped keys resolved from the container are cached on the container."""
        container.register(Session, lifetime=Lifetime.SCOPED)

        assert container.resolve(Session) is container.resolve(Session)
        with container.create_scope() as scope:
            assert scope.resolve(Session) is not container.resolve(Session)

    def test_scoped_dependencies_share_scope_instance(self, container: Container) -> None:
        """Scoped dependencies of transients come from the requesting scope."""
        container.register(Session, lifetime=Lifetime.SCOPED)
        container.register(Repository)

        with container.create_scope() as scope:
            session = scope.resolve(Session)
            assert scope.resolve(Repository).session is session

    def test_singleton_shared_across_scopes(self, container: Container) -> None:
        """Singletons resolved from scopes are the container's singletons."""
        container.register(Engine, lifetime=Lifetime.SINGLETON)

        with container.create_scope() as first, container.create_scope() as second:
            assert first.resolve(Engine) is second.resolve(Engine)
            assert first.resolve(Engine) is container.resolve(Engine)

    def test_singleton_never_captures_scope_instance(self, container: Container) -> None:
        """A singleton's scoped dependency comes from the container, not the first scope."""
        container.register(Session, lifetime=Lifetime.SCOPED)
        container.register(Cache, lifetime=Lifetime.SINGLETON)

        with container.create_scope() as scope:
            cache = scope.resolve(Cache)
            assert cache.session is not scope.resolve(Session)
            assert cache.session is container.resolve(Session)

    def test_scoped_factory_receives_scope(self, container: Container) -> None:
        """Factories of scoped bindings are called with the requesting scope."""
        received: list[object] = []

        def build_session(resolver: Scope) -> Session:
            received.append(resolver)
            return Session()

        container.register_factory(Session, build_session, lifetime=Lifetime.SCOPED)

        with container.create_scope() as scope:
            scope.resolve(Session)

        assert received == [scope]

    def test_scopes_of_child_container_never_share_parent_scoped_binding(self) -> None:
        """Scopes borrow a parent container's binding, not its cached instance."""
        parent = Container()
        parent.register(Session, lifetime=Lifetime.SCOPED)
        child = Container(parent=parent)

        with child.create_scope() as first, child.create_scope() as second:
            first_session = first.resolve(Session)

            assert second.resolve(Session) is not first_session
            assert first.resolve(Session) is first_session
            assert parent.resolve(Session) is not first_session

    def test_child_container_caches_its_own_scoped_instance(self) -> None:
        parent = Container()
        parent.register(Session, lifetime=Lifetime.SCOPED)
        child = Container(parent=parent)

        assert child.resolve(Session) is child.resolve(Session)
        assert child.resolve(Session) is not parent.resolve(Session)

    def test_parent_scoped_instance_disposed_with_requesting_scope(self) -> None:
        parent = Container()
        parent.register(Session, lifetime=Lifetime.SCOPED)
        child = Container(parent=parent)

        with child.create_scope() as scope:
            session = scope.resolve(Session)

        assert session.closed

    def test_parent_unbind_evicts_child_container_instances(self) -> None:
        parent = Container()
        parent.register(Session, lifetime=Lifetime.SCOPED)
        child = Container(parent=parent)
        child.resolve(Session)

        parent.unbind(Session)

        assert len(child._store.scoped) == 0
        assert not child.is_registered(Session)


class TestScopeInstances:
    def test_scope_instance_visible_to_scope_and_children(self, container: Container) -> None:
        """Instances registered on a scope stay local to it."""
        container.register(Handler)

        with container.create_scope() as scope:
            context = RequestContext("/users")
            scope.register_instance(context)

            assert scope.resolve(Handler).context is context
            with scope.create_scope() as child:
                assert child.resolve(RequestContext) is context
            assert not container.is_registered(RequestContext)

    def test_scope_instances_are_not_disposed(self, container: Container) -> None:
        """Scope-registered instances belong to the caller."""
        session = Session()

        with container.create_scope() as scope:
            scope.register_instance(session)
            scope.resolve(Session)

        assert not session.closed


class TestDisposal:
    def test_scope_dispose_releases_scoped_instances_in_reverse_order(
        self,
        container: Container,
    ) -> None:
        """Scoped disposables are disposed most recently created first."""
        container.register(Session, lifetime=Lifetime.SCOPED)
        container.register(Repository, lifetime=Lifetime.SCOPED)

        with container.create_scope() as scope:
            scope.resolve(Repository)

        assert disposed_order == ["repository", "session"]

    def test_scope_dispose_keeps_singletons(self, container: Container) -> None:
        """Disposing a scope leaves the container's singletons alone."""
        container.register(Engine, lifetime=Lifetime.SINGLETON)

        with container.create_scope() as scope:
            engine = scope.resolve(Engine)

        assert not engine.closed
        container.dispose()
        assert engine.closed

    def test_transients_are_not_disposed(self, container: Container) -> None:
        """The container does not track transient instances."""
        container.register(Session)
        session = container.resolve(Session)

        container.dispose()

        assert not session.closed

    def test_container_dispose_cascades_to_open_scopes(self, container: Container) -> None:
        """Disposing the container disposes scopes still open."""
        container.register(Session, lifetime=Lifetime.SCOPED)
        scope = container.create_scope()
        session = scope.resolve(Session)

        container.dispose()

        assert session.closed
        assert scope.disposed
        with pytest.raises(SimpleDIObjectDisposedError):
            scope.resolve(Session)

    def test_resolve_after_scope_dispose_fails(self, container: Container) -> None:
        container.register(Session, lifetime=Lifetime.SCOPED)
        scope = container.create_scope()
        scope.dispose()

        with pytest.raises(SimpleDIObjectDisposedError):
            scope.resolve(Session)
        with pytest.raises(SimpleDIObjectDisposedError):
            scope.create_scope()

    def test_instances_registered_on_container_are_not_disposed(
        self,
        container: Container,
    ) -> None:
        engine = Engine()
        container.register_instance(engine)
        container.resolve(Engine)

        container.dispose()

        assert not engine.closed

    def test_dispose_failure_is_logged_and_does_not_stop_others(
        self,
        container: Container,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        container.register(Engine, lifetime=Lifetime.SINGLETON)
        container.register(BrokenResource, lifetime=Lifetime.SINGLETON)
        engine = container.resolve(Engine)
        container.resolve(BrokenResource)

        with caplog.at_level("WARNING", logger="simpledi"):
            container.dispose()

        assert engine.closed
        assert "Error disposing BrokenResource" in caplog.text

    def test_unbind_evicts_open_scope_instances(self, container: Container) -> None:
        """Unbinding drops scoped instances cached by open scopes."""
        container.register(Session, lifetime=Lifetime.SCOPED)

        with container.create_scope() as scope:
            first = scope.resolve(Session)
            container.unbind(Session)
            container.register(Session, lifetime=Lifetime.SCOPED)

            assert scope.resolve(Session) is not first


class TestRegisteredDisposables:
    def test_registered_disposable_disposed_with_container(self, container: Container) -> None:
        engine = container.register_disposable(Engine())

        container.dispose()

        assert engine.closed

    def test_registered_disposables_disposed_newest_first(self, container: Container) -> None:
        """External disposables go first, newest first, then built instances."""
        container.register(Session, lifetime=Lifetime.SINGLETON)
        container.resolve(Session)
        container.register_disposable(Engine())
        container.register_disposable(BrokenResource())
        container.register_disposable(Repository(Session()))

        container.dispose()

        assert disposed_order == ["repository", "engine", "session"]

    def test_scope_disposes_its_registered_disposables_only(self, container: Container) -> None:
        engine = Engine()

        with container.create_scope() as scope:
            scope.register_disposable(engine)

        assert engine.closed
        assert not container.disposed

    def test_disposal_failure_is_logged(
        self,
        container: Container,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        engine = container.register_disposable(Engine())
        container.register_disposable(BrokenResource())

        with caplog.at_level("WARNING", logger="simpledi"):
            container.dispose()

        assert engine.closed
        assert "Error disposing BrokenResource" in caplog.text

    def test_disposed_once(self, container: Container) -> None:
        container.register_disposable(Engine())

        container.dispose()
        container.dispose()

        assert disposed_order == ["engine"]

    def test_object_without_dispose_rejected(self, container: Container) -> None:
        with pytest.raises(SimpleDIRegistrationError, match="dispose"):
            container.register_disposable(RequestContext("/"))

    def test_register_after_dispose_fails(self, container: Container) -> None:
        container.dispose()

        with pytest.raises(SimpleDIObjectDisposedError):
            container.register_disposable(Engine())
