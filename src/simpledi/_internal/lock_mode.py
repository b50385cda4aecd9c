from __future__ import annotations

import threading
from contextlib import AbstractContextManager, nullcontext
from enum import Enum


class LockMode(Enum):
    """Select locking behavior for cached instance creation.

    Pass a value as ``lock_mode`` to ``Container`` or ``ContainerBuilder``.
    Scopes inherit the mode of their container.
    """

    THREAD = "thread"
    """Guard singleton and scoped caches with a reentrant ``threading.RLock``."""

    NONE = "none"
    """Disable locking around cache reads/writes. Only safe for single-threaded use."""

    def create_lock(self) -> AbstractContextManager[object]:
        """Return a fresh lock object honoring this mode."""
        if self is LockMode.NONE:
            return nullcontext()
        return threading.RLock()
