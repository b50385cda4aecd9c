from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from simpledi.exceptions import SimpleDICircularDependencyError

# Stores (thread_id, stack) so a context inherited by another thread starts a fresh stack.
_construction_stack: ContextVar[tuple[int, list[Any]] | None] = ContextVar(
    "simpledi_construction_stack",
    default=None,
)


def current_chain() -> tuple[Any, ...]:
    """Return the targets currently under construction on this thread, outermost first."""
    stored = _construction_stack.get()
    if stored is None or stored[0] != threading.get_ident():
        return ()
    return tuple(stored[1])


@contextmanager
def constructing(target: Any) -> Iterator[None]:
    """Track ``target`` as under construction for the duration of the block.

    The first tracked target of a thread opens a new resolution context that
    is discarded when that block exits, whether construction succeeded or not.

    Raises:
        SimpleDICircularDependencyError: If ``target`` is already under construction.

    """
    thread_id = threading.get_ident()
    stored = _construction_stack.get()
    if stored is not None and stored[0] == thread_id:
        stack = stored[1]
        if target in stack:
            raise SimpleDICircularDependencyError([*stack, target])
        token = None
    else:
        stack = []
        token = _construction_stack.set((thread_id, stack))

    stack.append(target)
    try:
        yield
    finally:
        stack.pop()
        if token is not None:
            _construction_stack.reset(token)
