"""Free TCP port discovery."""

import socket

from crosstest.config import LOOPBACK
from crosstest.errors import AllocationError


def allocate_free_port(host: str = LOOPBACK) -> int:
    """Ask the OS for an ephemeral TCP port that is currently unused.

    A throwaway socket is bound to port 0 and closed again without listening,
    so nothing holds the port once this returns.

    This is a best-effort reservation only: another process may take the port
    before the real listener binds it. The real bind is the authoritative
    check and reports its own failure (see BindError).

    Raises:
        AllocationError: if the probe socket cannot be bound.
    """
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        probe.bind((host, 0))
        return probe.getsockname()[1]
    except OSError as e:
        raise AllocationError(f"Could not allocate a free port on {host}: {e}") from e
    finally:
        probe.close()
