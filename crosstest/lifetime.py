"""Nested lifetime scopes.

A Lifetime collects teardown callbacks and runs them, newest first, when it
terminates. Nested lifetimes terminate together with their parent, before
anything the parent registered earlier.
"""

import sys
import threading
import traceback
from collections.abc import Callable
from typing import Optional


class Lifetime:
    """A scope with guaranteed-on-exit teardown."""

    def __init__(self, name: str = "", parent: Optional["Lifetime"] = None):
        self.name = name
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._alive = True
        self._parent: Optional["Lifetime"] = None
        if parent is not None:
            if parent.on_termination(self.terminate):
                self._parent = parent
            else:
                self._alive = False

    @property
    def is_alive(self) -> bool:
        with self._lock:
            return self._alive

    def create_nested(self, name: str = "") -> "Lifetime":
        """Create a child lifetime that ends no later than this one."""
        return Lifetime(name, parent=self)

    def on_termination(self, callback: Callable[[], None]) -> bool:
        """Register a teardown callback.

        Returns False (and does not register) if the lifetime already ended.
        """
        with self._lock:
            if not self._alive:
                return False
            self._callbacks.append(callback)
            return True

    def terminate(self) -> None:
        """End the lifetime. Safe to call more than once."""
        with self._lock:
            if not self._alive:
                return
            self._alive = False
            callbacks = self._callbacks
            self._callbacks = []
            parent, self._parent = self._parent, None

        if parent is not None:
            parent._forget(self.terminate)
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                print(f"Error terminating lifetime {self.name!r}:", file=sys.stderr)
                traceback.print_exc()

    def _forget(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def __repr__(self) -> str:
        state = "alive" if self.is_alive else "terminated"
        return f"Lifetime({self.name!r}, {state})"

    def __enter__(self) -> "Lifetime":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.terminate()
