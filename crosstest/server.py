"""Server side of a cross test: handshake, worker handoff and session bootstrap.

CrossTestServer allocates a loopback port and publishes it through the
handshake files as soon as it is constructed. The first queued action spawns
the dedicated worker, which binds the real listener and builds the protocol
session before any queued action runs. From then on the session is only
touched by actions running on that worker.

Known limitation: the port is free when it is allocated, but another process
can take it before the worker binds it. That bind failure is fatal; the
handshake is withdrawn so the peer does not keep a stamp for a dead port.
Passing bind_retries > 0 re-allocates and re-publishes instead.
"""

import sys
import threading
from collections.abc import Callable
from typing import Optional

from crosstest.config import (
    LOOPBACK,
    PROTOCOL_NAME,
    SERVER_WIRE_NAME,
    WORKER_NAME,
    handshake_files_from_env,
)
from crosstest.errors import BindError, BootstrapError, HandshakeError
from crosstest.handshake import HandshakeFiles, publish_files, withdraw
from crosstest.identities import IdKind, Identities
from crosstest.lifetime import Lifetime
from crosstest.ports import allocate_free_port
from crosstest.protocol import Protocol
from crosstest.scheduler import Action, SingleThreadScheduler
from crosstest.serializers import Serializers
from crosstest.wire import ServerWire


class CrossTestServer:
    """Bootstraps the server-role protocol session for a cross test.

    The socket lifetime owns the worker and the listener. The model lifetime,
    nested inside it, owns the protocol session and ends first.
    """

    def __init__(
        self,
        files: Optional[HandshakeFiles] = None,
        allocator: Callable[[], int] = allocate_free_port,
        bind_retries: int = 0,
        name: str = SERVER_WIRE_NAME,
    ):
        """Allocate a port and publish it.

        Args:
            files: Handshake paths; read from the environment if omitted.
            allocator: Returns a free port to publish and bind.
            bind_retries: Extra attempts with a newly allocated port if the
                real bind fails. 0 makes a failed bind fatal.
            name: Name of the server wire.

        Raises:
            AllocationError: if no port could be allocated.
            HandshakeError: if the handshake files could not be written.
        """
        self.files = files if files is not None else handshake_files_from_env()
        self.name = name
        self._allocate = allocator
        self._bind_retries = bind_retries

        self.socket_lifetime = Lifetime("socket")
        self.model_lifetime: Optional[Lifetime] = None
        self.scheduler: Optional[SingleThreadScheduler] = None
        self.protocol: Optional[Protocol] = None

        self._lock = threading.Lock()
        self._backlog: list[Action] = []
        self._bootstrapped = False
        self._error: Optional[BootstrapError] = None
        self._ready = threading.Event()

        self.port = self._allocate()
        self._publish(self.port)

    def _publish(self, port: int) -> None:
        publish_files(port, self.files)
        print(f"port={port} written to {self.files.port_file}")

    def start(self) -> None:
        """Spawn the worker and bootstrap the session without queuing anything.

        Raises:
            BootstrapError: if the bootstrap already failed or the worker
                cannot be spawned.
        """
        with self._lock:
            if self._error is not None:
                raise self._error
            self._spawn_locked()

    def queue(self, action: Action) -> None:
        """Run action on the worker once the protocol session is ready.

        The first call spawns the worker. Actions run in the order they were
        queued, always after the session is fully built. This never blocks on
        the bootstrap.

        Raises:
            BootstrapError: if the bootstrap failed or the worker has stopped.
        """
        with self._lock:
            if self._error is not None:
                raise self._error
            if not self._bootstrapped:
                self._spawn_locked()
                self._backlog.append(action)
                return
        if not self.scheduler.queue(action):
            raise BootstrapError(f"{WORKER_NAME} has stopped, cannot queue action")

    def _spawn_locked(self) -> None:
        if self.scheduler is not None:
            return
        try:
            self.scheduler = SingleThreadScheduler.run_on_separate_thread(
                self.socket_lifetime, WORKER_NAME, self._bootstrap
            )
        except BootstrapError as e:
            self._error = e
            raise

    def _bootstrap(self, scheduler: SingleThreadScheduler) -> None:
        try:
            self._build_session(scheduler)
        except BootstrapError as e:
            self._fail(e)
            return

        with self._lock:
            backlog, self._backlog = self._backlog, []
            self._bootstrapped = True
            for action in backlog:
                scheduler.queue(action)
        self._ready.set()

    def _build_session(self, scheduler: SingleThreadScheduler) -> None:
        try:
            wire = self._bind(scheduler)
            serializers = Serializers()
            identities = Identities(IdKind.SERVER)
            self.model_lifetime = self.socket_lifetime.create_nested("model")
            self.protocol = Protocol(
                PROTOCOL_NAME, serializers, identities, scheduler, wire, self.model_lifetime
            )
        except BootstrapError:
            raise
        except Exception as e:
            raise BootstrapError(f"{self.name}: could not build the session: {e}") from e

    def _bind(self, scheduler: SingleThreadScheduler) -> ServerWire:
        attempt = 0
        while True:
            try:
                return ServerWire(
                    self.socket_lifetime, scheduler, (LOOPBACK, self.port), self.name
                )
            except BindError as e:
                withdraw(self.files)
                if attempt >= self._bind_retries:
                    raise
                attempt += 1
                print(f"{e}; retrying with a new port ({attempt}/{self._bind_retries})")
                self.port = self._allocate()
                self._publish(self.port)

    def _fail(self, error: BootstrapError) -> None:
        print(f"FAIL: Bootstrap of {self.name} failed: {error}", file=sys.stderr)
        try:
            withdraw(self.files)
        except HandshakeError as e:
            print(f"{self.name}: {e}", file=sys.stderr)
        with self._lock:
            self._error = error
            self._backlog.clear()
        self.socket_lifetime.terminate()
        self._ready.set()

    @property
    def error(self) -> Optional[BootstrapError]:
        return self._error

    def wait_ready(self, timeout: float) -> Protocol:
        """Block until the session is built.

        Only for callers that want to block; queue() never needs this.

        Raises:
            BootstrapError: if the bootstrap failed or did not finish in time.
        """
        if not self._ready.wait(timeout):
            raise BootstrapError(f"{self.name} was not ready within {timeout}s")
        if self._error is not None:
            raise self._error
        return self.protocol

    def close(self) -> None:
        """Tear down the session, then the listener, then the worker."""
        self.socket_lifetime.terminate()

    def __enter__(self) -> "CrossTestServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
