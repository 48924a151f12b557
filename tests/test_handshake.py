"""Tests for publishing and reading the port handshake."""

import os
import tempfile
import threading
import time
import unittest
from pathlib import Path

from crosstest.errors import HandshakeError
from crosstest.handshake import (
    HandshakeFiles,
    publish,
    publish_files,
    read_port,
    wait_for_port,
    withdraw,
)


class HandshakeTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory(prefix="crosstest-handshake-")
        self.tmpdir = Path(self._tmp.name)
        self.files = HandshakeFiles.for_port_file(self.tmpdir / "port.txt")

    def tearDown(self):
        self._tmp.cleanup()


class PublishTest(HandshakeTestCase):
    def test_writes_port_then_empty_stamp(self):
        publish(5000, self.files.port_file, self.files.stamp_file)

        self.assertEqual(Path(self.files.port_file).read_bytes(), b"5000\n")
        self.assertTrue(os.path.exists(self.files.stamp_file))
        self.assertEqual(os.path.getsize(self.files.stamp_file), 0)

    def test_stamp_path_defaults_next_to_port_file(self):
        self.assertEqual(str(self.files.stamp_file), str(self.tmpdir / "port.txt.stamp"))

    def test_second_publish_overwrites(self):
        publish(5000, self.files.port_file, self.files.stamp_file)
        publish(6001, self.files.port_file, self.files.stamp_file)

        self.assertEqual(Path(self.files.port_file).read_text(), "6001\n")
        self.assertEqual(os.path.getsize(self.files.stamp_file), 0)

    def test_publish_shorter_port_truncates(self):
        publish(65000, self.files.port_file, self.files.stamp_file)
        publish(80, self.files.port_file, self.files.stamp_file)

        self.assertEqual(read_port(self.files.port_file), 80)

    def test_missing_directory_raises(self):
        missing = self.tmpdir / "missing" / "port.txt"
        with self.assertRaises(HandshakeError):
            publish(5000, missing, self.files.stamp_file)
        self.assertFalse(os.path.exists(self.files.stamp_file))

    def test_publish_files_creates_directories(self):
        files = HandshakeFiles.for_port_file(self.tmpdir / "a" / "b" / "port.txt")
        publish_files(5000, files)
        self.assertEqual(read_port(files.port_file), 5000)

    def test_port_file_complete_when_stamp_appears(self):
        for i in range(20):
            files = HandshakeFiles.for_port_file(self.tmpdir / f"run{i}" / "port.txt")
            os.makedirs(os.path.dirname(files.port_file))
            seen: list[str] = []

            def watch():
                deadline = time.time() + 10
                while not os.path.exists(files.stamp_file):
                    if time.time() > deadline:
                        return
                with open(files.port_file) as f:
                    seen.append(f.read())

            watcher = threading.Thread(target=watch)
            watcher.start()
            publish(40000 + i, files.port_file, files.stamp_file)
            watcher.join(timeout=10)

            self.assertEqual(seen, [f"{40000 + i}\n"])


class WithdrawTest(HandshakeTestCase):
    def test_removes_both_files(self):
        publish(5000, self.files.port_file, self.files.stamp_file)
        withdraw(self.files)
        self.assertFalse(os.path.exists(self.files.stamp_file))
        self.assertFalse(os.path.exists(self.files.port_file))

    def test_missing_files_are_ignored(self):
        withdraw(self.files)


class ReadPortTest(HandshakeTestCase):
    def test_rejects_partial_line(self):
        Path(self.files.port_file).write_text("50")
        self.assertIsNone(read_port(self.files.port_file))

    def test_rejects_garbage_and_out_of_range(self):
        Path(self.files.port_file).write_text("abc\n")
        self.assertIsNone(read_port(self.files.port_file))
        Path(self.files.port_file).write_text("70000\n")
        self.assertIsNone(read_port(self.files.port_file))

    def test_missing_file(self):
        self.assertIsNone(read_port(self.files.port_file))


class WaitForPortTest(HandshakeTestCase):
    def test_times_out_without_stamp(self):
        Path(self.files.port_file).write_text("5000\n")
        self.assertIsNone(wait_for_port(self.files, timeout=0.2, poll_interval=0.01))

    def test_returns_port_published_later(self):
        timer = threading.Timer(
            0.2, publish, args=(5123, self.files.port_file, self.files.stamp_file)
        )
        timer.start()
        try:
            port = wait_for_port(self.files, timeout=5, poll_interval=0.01)
        finally:
            timer.join()
        self.assertEqual(port, 5123)


if __name__ == "__main__":
    unittest.main()
