from __future__ import annotations

import string
import unittest

from assetbundler.hashing import compute_hash


class ComputeHashTests(unittest.TestCase):
    def test_returns_eight_lowercase_hex_characters(self) -> None:
        for value in ("", "a", "author.modname", "C:\\Mods\\Assets|bundle|windows", "ünïcødé"):
            digest = compute_hash(value)
            self.assertEqual(len(digest), 8)
            self.assertTrue(set(digest) <= set(string.hexdigits.lower()), digest)

    def test_is_deterministic(self) -> None:
        self.assertEqual(compute_hash("/assets|bundle|auto"), compute_hash("/assets|bundle|auto"))

    def test_matches_sha256_prefix(self) -> None:
        # sha256("abc") = ba7816bf8f01cfea...
        self.assertEqual(compute_hash("abc"), "ba7816bf")

    def test_distinct_inputs_differ(self) -> None:
        values = ["a", "b", "/assets|bundle|windows", "/assets|bundle|mac", "/assets|other|windows"]
        digests = {compute_hash(value) for value in values}
        self.assertEqual(len(digests), len(values))

    def test_rejects_none(self) -> None:
        with self.assertRaises(ValueError):
            compute_hash(None)  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
