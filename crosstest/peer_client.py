"""Client library for peer binaries to reach a CrossTestServer."""

import socket
import time
from typing import Optional

from crosstest.config import LOOPBACK, handshake_files_from_env, handshake_timeout
from crosstest.handshake import HandshakeFiles, wait_for_port

CONNECT_RETRY_INTERVAL = 0.1


class PeerClient:
    """Waits for the handshake, then talks to the server over TCP."""

    def __init__(self, files: Optional[HandshakeFiles] = None, host: str = LOOPBACK):
        self.files = files if files is not None else handshake_files_from_env()
        self.host = host
        self.port: Optional[int] = None
        self._socket: Optional[socket.socket] = None
        self._buffer = b""

    def connect(self, timeout: Optional[float] = None) -> bool:
        """Wait for the stamp file, read the port and connect.

        Returns True on success, False on failure.
        """
        if timeout is None:
            timeout = handshake_timeout()
        deadline = time.time() + timeout
        port = wait_for_port(self.files, timeout)
        if port is None:
            print(f"No handshake in {self.files.stamp_file} after {timeout}s")
            return False
        self.port = port

        # The port is published before the server binds it, so a refused
        # connection is retried until the deadline.
        while True:
            remaining = deadline - time.time()
            try:
                self._socket = socket.create_connection(
                    (self.host, port), timeout=max(remaining, CONNECT_RETRY_INTERVAL)
                )
                return True
            except ConnectionRefusedError as e:
                if remaining <= 0:
                    print(f"Could not connect to {self.host}:{port}: {e}")
                    return False
                time.sleep(CONNECT_RETRY_INTERVAL)
            except OSError as e:
                print(f"Could not connect to {self.host}:{port}: {e}")
                self._socket = None
                return False

    def send(self, message: str) -> bool:
        """Send a line to the server.

        Automatically connects if not already connected.
        Returns True on success, False on failure.
        """
        if self._socket is None:
            if not self.connect():
                return False
        try:
            self._socket.sendall((message + "\n").encode("utf-8"))
            return True
        except OSError:
            return False

    def receive(self, timeout: float) -> Optional[str]:
        """Wait for and receive a line from the server.

        Returns:
            The line without its terminator, or None on timeout or error.
        """
        if self._socket is None:
            return None
        try:
            self._socket.settimeout(timeout)
            while b"\n" not in self._buffer:
                data = self._socket.recv(4096)
                if not data:
                    return None
                self._buffer += data
            line, self._buffer = self._buffer.split(b"\n", 1)
            return line.decode("utf-8").rstrip("\r")
        except (OSError, UnicodeDecodeError):
            return None

    def close(self) -> None:
        """Close the connection."""
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def __enter__(self) -> "PeerClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
