"""Peer process management for cross tests."""

import os
import signal
import subprocess
import sys
import time
from collections.abc import Mapping, Sequence
from typing import Optional

from crosstest.config import handshake_env, resolve_runfile
from crosstest.handshake import HandshakeFiles

SIGTERM_TIMEOUT = 10


class PeerProcess:
    """Runs the client endpoint of a cross test in its own process.

    The peer finds the server through the handshake files, whose paths are
    passed in its environment.
    """

    def __init__(
        self,
        binary: str,
        files: HandshakeFiles,
        args: Sequence[str] = (),
        interpreter: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        runfiles_env: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            binary: Absolute path, or runfiles path such as
                "_main/tests/echo/peer_binary".
            files: Handshake files the peer should wait on.
            args: Extra command line arguments for the peer.
            interpreter: Run binary through this program (e.g. sys.executable).
            env: Extra environment variables for the peer.
            runfiles_env: Environment used to locate runfiles; defaults to
                the current process environment.
        """
        self.binary = binary
        self.files = files
        self.args = list(args)
        self.interpreter = interpreter
        self.extra_env = dict(env) if env else {}
        self.runfiles_env = runfiles_env
        self._proc: Optional[subprocess.Popen] = None

    @property
    def returncode(self) -> Optional[int]:
        return self._proc.returncode if self._proc else None

    def command(self) -> Optional[list[str]]:
        binary_path = resolve_runfile(self.binary, self.runfiles_env)
        if binary_path is None:
            return None
        cmd = [binary_path] + self.args
        if self.interpreter:
            cmd.insert(0, self.interpreter)
        return cmd

    def start(self) -> bool:
        """Start the peer. Returns True if it was launched."""
        cmd = self.command()
        if cmd is None:
            return False

        env = os.environ.copy()
        env.update(self.extra_env)
        env.update(handshake_env(self.files))

        try:
            self._proc = subprocess.Popen(cmd, env=env)
        except OSError as e:
            print(f"Failed starting peer {self.binary}: {e}", file=sys.stderr)
            return False
        print(f"Started peer {self.binary} with PID {self._proc.pid}")
        return True

    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def wait(self, timeout: float) -> Optional[int]:
        """Wait for the peer to exit.

        Returns:
            The exit code, or None if the peer is still running after timeout.
        """
        if self._proc is None:
            return None
        try:
            code = self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        print(f"Peer {self.binary} exited with code {code}")
        return code

    def stop(self) -> None:
        """Stop the peer: SIGTERM first, then kill."""
        if self._proc is None or self._proc.poll() is not None:
            return

        try:
            if sys.platform == "win32":
                self._proc.terminate()
            else:
                self._proc.send_signal(signal.SIGTERM)
        except OSError:
            pass

        deadline = time.time() + SIGTERM_TIMEOUT
        while time.time() < deadline:
            if self._proc.poll() is not None:
                break
            time.sleep(0.1)

        if self._proc.poll() is None:
            print(f"Killing peer {self.binary} (PID {self._proc.pid})")
            try:
                self._proc.kill()
            except OSError:
                pass

        self._proc.wait()
        print(f"Peer {self.binary} exited with code {self._proc.returncode}")

    def __enter__(self) -> "PeerProcess":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
