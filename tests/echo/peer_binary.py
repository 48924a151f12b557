"""Peer binary for the echo cross test.

This binary:
1. Waits for the server's handshake (stamp file, then port file)
2. Connects and sends a PING value
3. Waits for a PONG response
4. Exits successfully
"""

import sys

from crosstest.peer_client import PeerClient

RESPONSE_TIMEOUT = 30


def main() -> int:
    client = PeerClient()
    if not client.connect():
        print("Failed to connect to the cross test server")
        return 1

    print(f"Connected to server on port {client.port}, sending PING")
    if not client.send("string:PING"):
        print(f"Failed to send PING to port {client.port}")
        return 1

    response = client.receive(RESPONSE_TIMEOUT)
    if response != "string:PONG":
        print(f"Expected string:PONG, got: {response}")
        return 1

    print("Received PONG, exiting")
    client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
