"""Test runner framework for cross-process protocol tests.

Provides common setup/teardown boilerplate for test runners including:
- Temp directory creation and cleanup
- Handshake files inside that directory
- CrossTestServer bootstrap and teardown
"""

import os
import shutil
import tempfile
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from crosstest.config import PORT_FILE_NAME
from crosstest.handshake import HandshakeFiles
from crosstest.server import CrossTestServer


@dataclass
class CrossTestContext:
    """Context passed to test functions."""

    working_dir: str
    files: HandshakeFiles
    server: CrossTestServer


@contextmanager
def cross_test_environment(
    temp_prefix: str,
    bind_retries: int = 0,
) -> Iterator[CrossTestContext]:
    """Context manager for cross test setup and teardown.

    Sets up:
    - Temp directory with given prefix
    - Handshake files inside it
    - CrossTestServer (port allocated and published)

    Tears down:
    - Ends the server's socket lifetime
    - Cleans up temp directory

    Args:
        temp_prefix: Prefix for the temp directory name
        bind_retries: Passed on to CrossTestServer

    Yields:
        CrossTestContext with working_dir, files, and server
    """
    working_dir = tempfile.mkdtemp(prefix=temp_prefix)
    print(f"Working directory: {working_dir}")

    try:
        files = HandshakeFiles.for_port_file(os.path.join(working_dir, PORT_FILE_NAME))
        with CrossTestServer(files, bind_retries=bind_retries) as server:
            yield CrossTestContext(working_dir=working_dir, files=files, server=server)
    finally:
        try:
            shutil.rmtree(working_dir)
        except OSError as e:
            print(f"Warning: Failed to cleanup {working_dir}: {e}")


def run_cross_test(
    temp_prefix: str,
    test_fn: Callable[[CrossTestContext], int],
    bind_retries: int = 0,
) -> int:
    """Run a cross test with automatic setup and teardown.

    Args:
        temp_prefix: Prefix for the temp directory name
        test_fn: Function that receives CrossTestContext and returns exit code
        bind_retries: Passed on to CrossTestServer

    Returns:
        Exit code from test_fn, or 1 if the bootstrap failed
    """
    try:
        with cross_test_environment(temp_prefix, bind_retries) as ctx:
            return test_fn(ctx)
    except RuntimeError as e:
        print(f"FAIL: {e}")
        return 1
