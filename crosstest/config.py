"""Configuration for cross test bootstrap: constants and handshake locations."""

import os
import sys
import tempfile
from collections.abc import Mapping
from typing import Optional

from runfiles import runfiles

LOOPBACK = "127.0.0.1"

WORKER_NAME = "Worker"
SERVER_WIRE_NAME = "DemoServer"
PROTOCOL_NAME = "Server"

PORT_FILE_NAME = "port.txt"
STAMP_SUFFIX = ".stamp"

ENV_PORT_FILE = "CROSSTEST_PORT_FILE"
ENV_STAMP_FILE = "CROSSTEST_STAMP_FILE"
ENV_HANDSHAKE_TIMEOUT = "CROSSTEST_HANDSHAKE_TIMEOUT"

HANDSHAKE_TIMEOUT = 60.0
HANDSHAKE_POLL_INTERVAL = 0.05
WORKER_JOIN_TIMEOUT = 5.0


def default_port_file(env: Optional[Mapping[str, str]] = None) -> str:
    """Port file location when none is configured.

    Bazel gives each test its own TEST_TMPDIR; outside bazel the system temp
    directory is used.
    """
    env = os.environ if env is None else env
    base = env.get("TEST_TMPDIR") or tempfile.gettempdir()
    return os.path.join(base, "crosstest", PORT_FILE_NAME)


def handshake_files_from_env(env: Optional[Mapping[str, str]] = None):
    """Build HandshakeFiles from CROSSTEST_PORT_FILE / CROSSTEST_STAMP_FILE."""
    # Import here to avoid circular dependency
    from crosstest.handshake import HandshakeFiles

    env = os.environ if env is None else env
    port_file = env.get(ENV_PORT_FILE) or default_port_file(env)
    stamp_file = env.get(ENV_STAMP_FILE) or port_file + STAMP_SUFFIX
    return HandshakeFiles(port_file, stamp_file)


def handshake_env(files) -> dict[str, str]:
    """Environment entries that point a peer process at the handshake files."""
    return {
        ENV_PORT_FILE: str(files.port_file),
        ENV_STAMP_FILE: str(files.stamp_file),
    }


def handshake_timeout(env: Optional[Mapping[str, str]] = None) -> float:
    env = os.environ if env is None else env
    value = env.get(ENV_HANDSHAKE_TIMEOUT)
    if not value:
        return HANDSHAKE_TIMEOUT
    try:
        return float(value)
    except ValueError:
        print(
            f"Ignoring invalid {ENV_HANDSHAKE_TIMEOUT}={value!r}, using {HANDSHAKE_TIMEOUT}",
            file=sys.stderr,
        )
        return HANDSHAKE_TIMEOUT


def resolve_runfile(path: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Resolve a peer binary path.

    Absolute paths are used as they are. Anything else is looked up in the
    bazel runfiles tree, e.g. "_main/tests/echo/peer_binary".
    """
    if os.path.isabs(path):
        if not os.path.exists(path):
            print(f"Couldn't find {path}", file=sys.stderr)
            return None
        return path

    r = runfiles.Create(dict(env) if env is not None else None)
    if r is None:
        print(f"No runfiles available to resolve {path}", file=sys.stderr)
        return None
    resolved = r.Rlocation(path)
    if resolved is None:
        print(f"Couldn't find {path}", file=sys.stderr)
    return resolved
