"""Filesystem handshake between the server process and its peer.

The server writes its port to a port file and then creates an empty stamp
file. Peers wait for the stamp file before reading the port file, so they
never see a half-written port.
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from crosstest.config import HANDSHAKE_POLL_INTERVAL, STAMP_SUFFIX
from crosstest.errors import HandshakeError

PathLike = Union[str, os.PathLike]


@dataclass(frozen=True)
class HandshakeFiles:
    """The two well-known handshake paths."""

    port_file: PathLike
    stamp_file: PathLike

    @classmethod
    def for_port_file(cls, port_file: PathLike) -> "HandshakeFiles":
        return cls(port_file, f"{os.fspath(port_file)}{STAMP_SUFFIX}")


def publish(port: int, port_file: PathLike, stamp_file: PathLike) -> None:
    """Publish port for the peer process.

    The port file is written, flushed and closed before the stamp file is
    created. Both files are truncated if they already exist.

    Raises:
        HandshakeError: if either file cannot be written.
    """
    try:
        with open(port_file, "w", encoding="ascii", newline="\n") as f:
            f.write(f"{port}\n")
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise HandshakeError(f"Could not write port file {port_file}: {e}") from e

    try:
        with open(stamp_file, "wb"):
            pass
    except OSError as e:
        raise HandshakeError(f"Could not create stamp file {stamp_file}: {e}") from e


def publish_files(port: int, files: HandshakeFiles) -> None:
    for path in (files.port_file, files.stamp_file):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    publish(port, files.port_file, files.stamp_file)


def withdraw(files: HandshakeFiles) -> None:
    """Remove a published handshake, stamp file first."""
    for path in (files.stamp_file, files.port_file):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise HandshakeError(f"Could not remove {path}: {e}") from e


def read_port(port_file: PathLike) -> Optional[int]:
    """Parse the port file. Returns None if it is missing or malformed."""
    try:
        with open(port_file, encoding="ascii") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError):
        return None
    if not content.endswith("\n"):
        return None
    try:
        port = int(content.strip())
    except ValueError:
        return None
    if not 1 <= port <= 65535:
        return None
    return port


def wait_for_port(
    files: HandshakeFiles,
    timeout: float,
    poll_interval: float = HANDSHAKE_POLL_INTERVAL,
) -> Optional[int]:
    """Wait for the stamp file, then read the port the server published.

    Args:
        files: Handshake paths to watch.
        timeout: Maximum time to wait in seconds.
        poll_interval: Delay between checks for the stamp file.

    Returns:
        The published port, or None if no valid handshake appeared in time.
    """
    deadline = time.time() + timeout
    while True:
        if os.path.exists(files.stamp_file):
            port = read_port(files.port_file)
            if port is not None:
                return port
        remaining = deadline - time.time()
        if remaining <= 0:
            return None
        time.sleep(min(poll_interval, remaining))
