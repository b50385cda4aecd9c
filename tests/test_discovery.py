"""Tests for discovering and installing pre-existing objects."""

from typing import Protocol

from simpledi import Container, Injected, ServiceKey, discover, injectable, install
from simpledi.discovery import INJECTABLE_ATTR, InjectableInfo


class AudioSink(Protocol):
    def play(self) -> str: ...


class Reader(Protocol):
    def read(self) -> str: ...


class Writer(Protocol):
    def write(self) -> str: ...


@injectable
class Mixer:
    speaker: Injected[AudioSink]


@injectable(provides=AudioSink)
class Speaker:
    mixer: Injected[Mixer]

    def play(self) -> str:
        return "beep"


@injectable(provides=[Reader, Writer], name="primary")
class FileStore:
    def read(self) -> str:
        return "read"

    def write(self) -> str:
        return "write"


class Unmarked:
    pass


class TestInjectable:
    def test_bare_decorator_provides_own_type(self) -> None:
        info = getattr(Mixer, INJECTABLE_ATTR)

        assert info == InjectableInfo(provides=())

    def test_decorator_with_arguments(self) -> None:
        info = getattr(FileStore, INJECTABLE_ATTR)

        assert info == InjectableInfo(provides=(Reader, Writer), name="primary")


class TestDiscover:
    def test_ignores_unmarked_objects(self) -> None:
        mixer = Mixer()

        discovered = discover([Unmarked(), mixer, 42])

        assert [(binding.key, binding.instance) for binding in discovered] == [
            (ServiceKey(Mixer), mixer),
        ]

    def test_one_binding_per_provided_service(self) -> None:
        store = FileStore()

        discovered = discover([store])

        assert [binding.key for binding in discovered] == [
            ServiceKey(Reader, "primary"),
            ServiceKey(Writer, "primary"),
        ]

    def test_discover_never_touches_container(self, container: Container) -> None:
        discover([Mixer()])

        assert not container.is_registered(Mixer)


class TestInstall:
    def test_batch_members_can_depend_on_each_other(self, container: Container) -> None:
        """Every object is registered before any object is injected."""
        mixer = Mixer()
        speaker = Speaker()

        injected = install(container, discover([mixer, speaker]))

        assert injected == [mixer, speaker]
        assert mixer.speaker is speaker
        assert speaker.mixer is mixer
        assert container.resolve(AudioSink) is speaker

    def test_object_with_several_services_injected_once(self, container: Container) -> None:
        store = FileStore()

        injected = install(container, discover([store]))

        assert injected == [store]
        assert container.resolve(Reader, "primary") is store
        assert container.resolve(Writer, "primary") is store

    def test_install_into_scope(self, container: Container) -> None:
        mixer = Mixer()
        speaker = Speaker()

        with container.create_scope() as scope:
            install(scope, discover([mixer, speaker]))

            assert scope.resolve(Mixer) is mixer
            assert not container.is_registered(Mixer)

        assert mixer.speaker is speaker
