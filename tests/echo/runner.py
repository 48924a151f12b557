"""Echo cross test runner.

This test validates the full bootstrap: the server publishes its port, the
peer binary (in a separate process) waits for the stamp file, connects and
sends PING, and the protocol session answers PONG from the worker thread.
"""

import os
import sys

from crosstest.peer_process import PeerProcess
from crosstest.runner import CrossTestContext, run_cross_test

PEER_RUNFILE = "_main/tests/echo/peer_binary.py"
PEER_TIMEOUT = 60


def peer_binary() -> str:
    """Use the peer next to this runner, or find it in runfiles under bazel."""
    local = os.path.join(os.path.dirname(os.path.abspath(__file__)), "peer_binary.py")
    if os.path.exists(local):
        return local
    return PEER_RUNFILE


def test_echo(ctx: CrossTestContext) -> int:
    print("\n=== Running echo cross test ===")
    received: list[object] = []

    def answer_pings() -> None:
        protocol = ctx.server.protocol

        def on_value(value: object) -> None:
            received.append(value)
            if value == "PING":
                protocol.send("PONG")

        protocol.advise(on_value)

    ctx.server.queue(answer_pings)

    with PeerProcess(peer_binary(), ctx.files, interpreter=sys.executable) as peer:
        code = peer.wait(PEER_TIMEOUT)

    if code is None:
        print(f"FAIL: Peer did not finish within {PEER_TIMEOUT}s")
        return 1
    if code != 0:
        print(f"FAIL: Peer exited with code {code}")
        return 1
    if received != ["PING"]:
        print(f"FAIL: Expected ['PING'], got: {received}")
        return 1

    print("PASS: Peer received PONG for its PING")
    print("\n=== Test passed ===")
    return 0


def main() -> int:
    return run_cross_test("crosstest-echo-", test_echo)


if __name__ == "__main__":
    sys.exit(main())
