"""Tests for digest computation and output naming."""

import hashlib
import tempfile
import unittest
from pathlib import Path

from filecourier.file import (
    digest_file, digest_file_sync, digests_match,
    resolve_unique_name, sanitize_filename, format_peer,
)

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class DigestTest(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    async def test_known_digest(self):
        path = self.dir / "abc.txt"
        path.write_bytes(b"abc")
        self.assertEqual(await digest_file(path), ABC_SHA256)
        self.assertEqual(digest_file_sync(path), ABC_SHA256)

    async def test_chunked_digest_matches_whole(self):
        data = bytes(range(256)) * 1000
        path = self.dir / "data.bin"
        path.write_bytes(data)

        expected = hashlib.sha256(data).hexdigest()
        self.assertEqual(await digest_file(path, chunk_size=7), expected)
        self.assertEqual(digest_file_sync(path, chunk_size=7), expected)
        self.assertEqual(await digest_file(path), await digest_file(path))

    async def test_distinct_payloads_differ(self):
        a = self.dir / "a"
        b = self.dir / "b"
        a.write_bytes(b"payload one")
        b.write_bytes(b"payload two")
        self.assertNotEqual(await digest_file(a), await digest_file(b))

    def test_match_ignores_case(self):
        self.assertTrue(digests_match(ABC_SHA256.upper(), ABC_SHA256))
        self.assertFalse(digests_match("0" * 64, ABC_SHA256))


class NamingTest(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_free_name_is_unchanged(self):
        self.assertEqual(
            resolve_unique_name(self.dir, "name.ext", "127.0.0.1:5000"), "name.ext"
        )

    def test_collision_inserts_peer_and_timestamp_before_extension(self):
        (self.dir / "name.ext").write_bytes(b"x")
        name = resolve_unique_name(self.dir, "name.ext", "127.0.0.1:5000", now=1700000000)
        self.assertEqual(name, "name_127.0.0.1_5000_1700000000.ext")
        self.assertFalse((self.dir / name).exists())

    def test_collision_without_extension(self):
        (self.dir / "README").write_bytes(b"x")
        name = resolve_unique_name(self.dir, "README", "10.0.0.2:41000", now=1700000000)
        self.assertEqual(name, "README_10.0.0.2_41000_1700000000")

    def test_only_last_extension_is_kept(self):
        (self.dir / "backup.tar.gz").write_bytes(b"x")
        name = resolve_unique_name(self.dir, "backup.tar.gz", "h:1", now=5)
        self.assertEqual(name, "backup.tar_h_1_5.gz")

    def test_never_returns_existing_name(self):
        (self.dir / "a.txt").write_bytes(b"x")
        (self.dir / "a_h_1_5.txt").write_bytes(b"x")
        name = resolve_unique_name(self.dir, "a.txt", "h:1", now=5)
        self.assertEqual(name, "a_h_1_5-1.txt")
        self.assertFalse((self.dir / name).exists())

    def test_sanitize_strips_directories(self):
        self.assertEqual(sanitize_filename("../../etc/passwd"), "passwd")
        self.assertEqual(sanitize_filename("..\\windows\\x.txt"), "x.txt")
        self.assertEqual(sanitize_filename("report.pdf"), "report.pdf")
        self.assertEqual(sanitize_filename(""), "received.bin")
        self.assertEqual(sanitize_filename("dir/.."), "received.bin")

    def test_format_peer(self):
        self.assertEqual(format_peer(("127.0.0.1", 5000)), "127.0.0.1:5000")
        self.assertEqual(format_peer(("::1", 5000, 0, 0)), "[::1]:5000")
        self.assertEqual(format_peer("host:1"), "host:1")
        self.assertEqual(format_peer(None), "unknown")


if __name__ == '__main__':
    unittest.main()
