"""Tests for the serializer registry and identities."""

import unittest
from dataclasses import dataclass

from crosstest.identities import IdKind, Identities
from crosstest.serializers import Serializers


@dataclass
class Point:
    x: int
    y: int


class SerializersTest(unittest.TestCase):
    def test_primitives_are_registered(self):
        serializers = Serializers()
        for cls in (str, bool, int, float):
            self.assertIn(cls, serializers)
        self.assertEqual(serializers.write("PING"), "string:PING")
        self.assertEqual(serializers.write(True), "bool:true")
        self.assertEqual(serializers.read("int:42"), 42)

    def test_strings_stay_on_one_line(self):
        serializers = Serializers()
        for value in ("  x  ", "a\nb", "back\\slash", "crlf\r\n", "\\n", ""):
            text = serializers.write(value)
            self.assertNotIn("\n", text)
            self.assertNotIn("\r", text)
            self.assertEqual(serializers.read(text), value)
        self.assertEqual(serializers.write("a\nb"), "string:a\\nb")

    def test_bad_string_escape(self):
        serializers = Serializers()
        with self.assertRaises(ValueError):
            serializers.read("string:tab\\t")
        with self.assertRaises(ValueError):
            serializers.read("string:trailing\\")

    def test_multi_line_payload_rejected(self):
        serializers = Serializers()
        serializers.register(list, "lines", "\n".join, str.splitlines)
        self.assertEqual(serializers.write(["one"]), "lines:one")
        with self.assertRaises(ValueError):
            serializers.write(["one", "two"])

    def test_custom_type(self):
        serializers = Serializers()
        serializers.register(
            Point,
            "point",
            lambda p: f"{p.x},{p.y}",
            lambda s: Point(*map(int, s.split(","))),
        )
        self.assertEqual(serializers.write(Point(1, 2)), "point:1,2")
        self.assertEqual(serializers.read("point:3,4"), Point(3, 4))

    def test_duplicate_registration_rejected(self):
        serializers = Serializers()
        with self.assertRaises(ValueError):
            serializers.register(str, "other", str, str)
        with self.assertRaises(ValueError):
            serializers.register(Point, "string", str, str)

    def test_unknown_values(self):
        serializers = Serializers()
        with self.assertRaises(KeyError):
            serializers.write(Point(0, 0))
        with self.assertRaises(KeyError):
            serializers.read("nope:1")
        with self.assertRaises(KeyError):
            serializers.read("no separator")


class IdentitiesTest(unittest.TestCase):
    def test_server_and_client_ids_never_collide(self):
        server = Identities(IdKind.SERVER)
        client = Identities(IdKind.CLIENT)
        server_ids = {server.next() for _ in range(50)}
        client_ids = {client.next() for _ in range(50)}
        self.assertEqual(len(server_ids), 50)
        self.assertFalse(server_ids & client_ids)
        self.assertTrue(all(i % 2 == 0 for i in server_ids))


if __name__ == "__main__":
    unittest.main()
