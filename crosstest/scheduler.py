"""Single-threaded worker that owns protocol state.

All protocol work is routed through one SingleThreadScheduler. Actions run on
its thread strictly in the order they were queued, one at a time, so protocol
state never needs a lock of its own.
"""

import sys
import threading
import traceback
from collections import deque
from collections.abc import Callable
from typing import Optional

from crosstest.config import WORKER_JOIN_TIMEOUT
from crosstest.errors import SpawnError
from crosstest.lifetime import Lifetime

Action = Callable[[], None]


class SingleThreadScheduler:
    """A named worker thread with a FIFO run queue, bound to a lifetime."""

    def __init__(self, lifetime: Lifetime, name: str):
        self.name = name
        self._queue: deque[Action] = deque()
        self._condition = threading.Condition(threading.Lock())
        self._running = True
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        if not lifetime.on_termination(self._terminate):
            self._running = False

    @classmethod
    def run_on_separate_thread(
        cls,
        lifetime: Lifetime,
        name: str,
        entry_point: Callable[["SingleThreadScheduler"], None],
    ) -> "SingleThreadScheduler":
        """Create a dedicated scheduler and run entry_point on it.

        Returns immediately; entry_point runs asynchronously, exactly once, as
        the first action on the new thread.

        Raises:
            SpawnError: if the lifetime already ended or the thread cannot start.
        """
        scheduler = cls(lifetime, name)
        if not scheduler.queue(lambda: entry_point(scheduler)):
            raise SpawnError(f"Cannot spawn {name}: lifetime {lifetime.name!r} has ended")
        scheduler.start()
        return scheduler

    def start(self) -> None:
        try:
            self._thread.start()
        except RuntimeError as e:
            raise SpawnError(f"Could not start worker thread {self.name}: {e}") from e
        print(f"Started worker {self.name}")

    @property
    def is_active(self) -> bool:
        """True when called from this scheduler's thread."""
        return threading.current_thread() is self._thread

    @property
    def is_running(self) -> bool:
        with self._condition:
            return self._running

    def assert_thread(self) -> None:
        if not self.is_active:
            raise RuntimeError(
                f"Must be called on {self.name}, not {threading.current_thread().name}"
            )

    def queue(self, action: Action) -> bool:
        """Queue an action to run on the worker thread.

        Returns:
            True if the action was accepted, False if the scheduler has stopped.
        """
        with self._condition:
            if not self._running:
                return False
            self._queue.append(action)
            self._condition.notify_all()
            return True

    def flush(self, timeout: float) -> bool:
        """Block until every action queued so far has run.

        Must not be called from the worker itself.

        Returns:
            True if the queue drained within timeout, False otherwise.
        """
        if self.is_active:
            raise RuntimeError(f"Cannot flush {self.name} from its own thread")
        done = threading.Event()
        if not self.queue(done.set):
            return False
        return done.wait(timeout)

    def _run(self) -> None:
        while True:
            with self._condition:
                while self._running and not self._queue:
                    self._condition.wait()
                if not self._running:
                    break
                action = self._queue.popleft()
            try:
                action()
            except Exception:
                print(f"Error in action on {self.name}:", file=sys.stderr)
                traceback.print_exc()

    def _terminate(self) -> None:
        with self._condition:
            if not self._running:
                return
            self._running = False
            abandoned = len(self._queue)
            self._queue.clear()
            self._condition.notify_all()

        if abandoned:
            print(f"Worker {self.name} stopped with {abandoned} queued action(s) abandoned")
        if self._thread.is_alive() and not self.is_active:
            self._thread.join(timeout=WORKER_JOIN_TIMEOUT)
            if self._thread.is_alive():
                print(f"Worker {self.name} still busy after {WORKER_JOIN_TIMEOUT}s", file=sys.stderr)
        print(f"Stopped worker {self.name}")

    def __repr__(self) -> str:
        return f"SingleThreadScheduler({self.name!r})"
