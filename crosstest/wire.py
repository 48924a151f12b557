"""Server-role TCP wire for a protocol session.

Messages are newline-delimited UTF-8 strings, one client connection per wire.
The listener is bound on the worker thread. A receiver thread only reads
bytes; every decoded line is queued back onto the worker before any handler
sees it, and sends are only allowed from the worker.
"""

import socket
import sys
import threading
from collections.abc import Callable
from typing import Optional

from crosstest.errors import BindError
from crosstest.lifetime import Lifetime
from crosstest.scheduler import SingleThreadScheduler

RECV_TIMEOUT = 1.0


class ServerWire:
    """TCP listener that accepts a single peer connection."""

    def __init__(
        self,
        lifetime: Lifetime,
        scheduler: SingleThreadScheduler,
        endpoint: tuple[str, int],
        name: str,
    ):
        """Bind the listener. Must run on the scheduler's thread.

        Args:
            lifetime: Closing the wire is tied to the end of this lifetime.
            scheduler: Worker that owns the wire.
            endpoint: (host, port) to bind.
            name: Human-readable wire name used in log output.

        Raises:
            BindError: if the endpoint cannot be bound.
        """
        scheduler.assert_thread()
        self.name = name
        self.scheduler = scheduler
        self._handlers: list[Callable[[str], None]] = []
        self._pending: list[str] = []
        self._connection: Optional[socket.socket] = None
        self._accepted: Optional[socket.socket] = None
        self._receiver: Optional[threading.Thread] = None
        self._running = True

        host, port = endpoint
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if sys.platform != "win32":
            self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self._socket.bind((host, port))
            self._socket.listen(1)
        except OSError as e:
            self._socket.close()
            raise BindError(port, f"{name}: could not bind {host}:{port}: {e}") from e
        self.host = host
        self.port = self._socket.getsockname()[1]
        self._socket.settimeout(RECV_TIMEOUT)

        if not lifetime.on_termination(self.close):
            self.close()
            return

        self._receiver = threading.Thread(
            target=self._receive_loop, name=f"{name}-receiver", daemon=True
        )
        self._receiver.start()
        print(f"{name} listening on {self.host}:{self.port}")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_receiving(self) -> bool:
        return self._receiver is not None and self._receiver.is_alive()

    def advise(self, handler: Callable[[str], None]) -> None:
        """Call handler on the worker for every line received."""
        self.scheduler.assert_thread()
        self._handlers.append(handler)

    def send(self, message: str) -> bool:
        """Send a line to the peer.

        Lines sent before the peer connects are held and flushed on connect.

        Returns:
            True on success, False on failure.
        """
        self.scheduler.assert_thread()
        if not self._running:
            return False
        if self._connection is None:
            self._pending.append(message)
            return True
        try:
            self._connection.sendall((message + "\n").encode("utf-8"))
            return True
        except OSError:
            return False

    def close(self) -> None:
        """Stop receiving and release the listener and the connection.

        Waits for the receiver thread unless called from it.
        """
        self._running = False
        for sock in (self._socket, self._accepted):
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        for sock in (self._socket, self._connection, self._accepted):
            if sock is None:
                continue
            try:
                sock.close()
            except OSError:
                pass
        receiver = self._receiver
        if receiver is not None and receiver is not threading.current_thread():
            receiver.join(timeout=2 * RECV_TIMEOUT)
            if receiver.is_alive():
                print(f"{self.name}: receiver still running after close", file=sys.stderr)

    def _on_connected(self, conn: socket.socket, addr) -> None:
        if not self._running:
            conn.close()
            return
        self._connection = conn
        print(f"{self.name} accepted connection from {addr[0]}:{addr[1]}")
        pending, self._pending = self._pending, []
        for message in pending:
            if not self.send(message):
                print(f"{self.name}: failed to flush pending message", file=sys.stderr)
                break

    def _on_disconnected(self, conn: socket.socket) -> None:
        print(f"{self.name}: peer disconnected")
        conn.close()

    def _dispatch(self, content: str) -> None:
        for handler in list(self._handlers):
            handler(content)

    def _receive_loop(self) -> None:
        """Accept the peer, then forward its lines to the worker."""
        while self._running:
            try:
                conn, addr = self._socket.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            break
        else:
            return

        self._accepted = conn
        conn.settimeout(RECV_TIMEOUT)
        if self.scheduler.queue(lambda: self._on_connected(conn, addr)):
            self._forward_lines(conn)
            # Lines already queued are answered before the worker closes conn.
            if self._running and self.scheduler.queue(lambda: self._on_disconnected(conn)):
                return
        conn.close()

    def _forward_lines(self, conn: socket.socket) -> None:
        buffer = b""
        while self._running:
            try:
                data = conn.recv(4096)
            except socket.timeout:
                continue
            except OSError:
                return
            if not data:
                return
            buffer += data
            while b"\n" in buffer:
                line, buffer = buffer.split(b"\n", 1)
                try:
                    content = line.decode("utf-8").rstrip("\r")
                except UnicodeDecodeError as e:
                    print(f"{self.name}: dropping line that is not UTF-8: {e}", file=sys.stderr)
                    continue
                if content:
                    self.scheduler.queue(lambda content=content: self._dispatch(content))

    def __repr__(self) -> str:
        return f"ServerWire({self.name!r}, {self.host}:{self.port})"
