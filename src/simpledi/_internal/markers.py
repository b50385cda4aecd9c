from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, Union, get_args, get_origin

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

_ANNOTATED_MARKER_MIN_ARGS = 2
INJECT_MEMBER_ATTR = "__simpledi_inject__"
CONSTRUCTOR_ATTR = "__simpledi_constructor__"


class Inject(NamedTuple):
    """Mark a constructor parameter, field or member for injection.

    Attach ``Inject`` metadata to ``typing.Annotated``. ``name`` selects a named
    binding of the annotated service type and ``optional`` lets the container
    skip the slot when it cannot be resolved.

    Examples:
        .. code-block:: python

            class Canvas:
                shape: Annotated[Shape, Inject(name="square")]
                tracer: Annotated[Tracer, Inject(optional=True)]

    """

    name: str | None = None
    optional: bool = False


class AllMarker(NamedTuple):
    """Marker for collecting every binding registered for an abstract type."""

    service: Any


if TYPE_CHECKING:
    Injected = Union[T, T]  # noqa: UP007,PYI016
    """Mark a class field for injection.

    At runtime ``Injected[T]`` becomes ``Annotated[T, Inject()]``.
    """

    Maybe = T | None  # type: ignore[misc]
    """Mark a dependency as optional.

    At runtime ``Maybe[T]`` becomes ``Annotated[T, Inject(optional=True)]``.
    """

    All = list[T]
    """Resolve every binding registered for an abstract type as a list."""

else:

    class Injected:
        """Mark a class field for injection.

        At runtime ``Injected[T]`` resolves to ``Annotated[T, Inject()]``.

        Examples:
            .. code-block:: python

                class Player:
                    weapon: Injected[Weapon]

        """

        def __class_getitem__(cls, item: T) -> Annotated[T, Inject]:
            return _append_marker(item, Inject())

    class Maybe:
        """Mark a dependency as optional.

        At runtime ``Maybe[T]`` resolves to ``Annotated[T, Inject(optional=True)]``.
        """

        def __class_getitem__(cls, item: T) -> Annotated[T, Inject]:
            return _append_marker(item, Inject(optional=True))

    class All:
        """Resolve every binding registered for an abstract type.

        At runtime ``All[T]`` resolves to ``Annotated[T, AllMarker(service=T)]``.
        The slot receives the same list ``resolve_all(T)`` returns.
        """

        def __class_getitem__(cls, item: Any) -> Any:
            base = get_args(item)[0] if get_origin(item) is Annotated else item
            return build_annotated((base, AllMarker(service=base)))


def inject(member: F) -> F:
    """Mark a method or a property setter for injection.

    Decorated methods are called once per constructed instance with every
    annotated parameter resolved from the container. A decorated property
    setter receives the resolved value of its annotated parameter.

    Examples:
        .. code-block:: python

            class Player:
                @inject
                def equip(self, weapon: Weapon) -> None:
                    self.weapon = weapon

    """
    setattr(member, INJECT_MEMBER_ATTR, True)
    return member


def constructor(factory: F) -> F:
    """Mark a classmethod as an additional public constructor.

    Works both above and below ``@classmethod``. Among ``__init__`` and every
    marked classmethod, the one with the greatest number of parameters is used.
    """
    target = getattr(factory, "__func__", factory)
    setattr(target, CONSTRUCTOR_ATTR, True)
    return factory


def is_marked_member(member: object) -> bool:
    """Return True when a function carries the ``@inject`` marker."""
    return bool(getattr(member, INJECT_MEMBER_ATTR, False))


def is_marked_constructor(member: object) -> bool:
    """Return True when a classmethod (or its function) carries the ``@constructor`` marker."""
    target = getattr(member, "__func__", member)
    return bool(getattr(target, CONSTRUCTOR_ATTR, False))


def find_inject_marker(annotation: Any) -> Inject | None:
    """Return the merged ``Inject`` marker of an annotation, if any."""
    markers = [item for item in _annotated_metadata(annotation) if isinstance(item, Inject)]
    if not markers:
        return None
    name = next((marker.name for marker in reversed(markers) if marker.name is not None), None)
    return Inject(name=name, optional=any(marker.optional for marker in markers))


def find_all_marker(annotation: Any) -> AllMarker | None:
    """Return the ``AllMarker`` of an ``All[...]`` annotation, if any."""
    return next(
        (item for item in _annotated_metadata(annotation) if isinstance(item, AllMarker)),
        None,
    )


def strip_annotated(annotation: Any) -> Any:
    """Return the base type of an ``Annotated`` token, or the annotation itself."""
    if get_origin(annotation) is Annotated:
        return get_args(annotation)[0]
    return annotation


def build_annotated(params: tuple[object, ...]) -> Any:
    """Return Annotated[...] with a pre-built params tuple (Py 3.10+ compatible)."""
    try:
        return Annotated.__class_getitem__(params)  # type: ignore[attr-defined]
    except AttributeError:
        return Annotated.__getitem__(params)  # type: ignore[attr-defined]


def _append_marker(item: Any, marker: object) -> Any:
    if get_origin(item) is Annotated:
        args = get_args(item)
        return build_annotated((args[0], *args[1:], marker))
    return build_annotated((item, marker))


def _annotated_metadata(annotation: Any) -> tuple[Any, ...]:
    if get_origin(annotation) is not Annotated:
        return ()
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return ()
    return annotation_args[1:]
