"""Tests for free port allocation."""

import socket
import unittest
from unittest import mock

from crosstest.errors import AllocationError
from crosstest.ports import allocate_free_port


class AllocateFreePortTest(unittest.TestCase):
    def test_port_in_tcp_range(self):
        port = allocate_free_port()
        self.assertGreaterEqual(port, 1)
        self.assertLessEqual(port, 65535)

    def test_probe_is_released(self):
        port = allocate_free_port()
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind(("127.0.0.1", port))
            listener.listen(1)
            self.assertEqual(listener.getsockname()[1], port)
        finally:
            listener.close()

    def test_probe_bind_failure_raises(self):
        probe = mock.MagicMock()
        probe.bind.side_effect = PermissionError("denied")
        with mock.patch("crosstest.ports.socket.socket", return_value=probe):
            with self.assertRaises(AllocationError):
                allocate_free_port()
        probe.close.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
