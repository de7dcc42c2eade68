"""
Tests for RemoteFileSystem against the in-memory remote.
"""

import asyncio
import codecs
import os

import pytest

from fakes import make_client
from psclient.application.file_system import (
    JOIN_CHUNKS_SCRIPT,
    WRITE_BYTES_SCRIPT,
    compute_hash,
    decode_text,
)
from psclient.domain.errors import TransferVerificationError

HELLO = "HELLO WORLD!".encode("utf-8")
HELLO_MD5 = "B59BC37D6441D96785BDA7AB2AE98F75"


class TestRemoteFileSystem:
    """Test cases for RemoteFileSystem."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client, self.factory = make_client()
        self.remote = self.factory.remote
        self.fs = self.client.file_system

    def teardown_method(self):
        """Clean up test fixtures."""
        self.client.close()

    def test_path_exists(self):
        self.remote.files["C:\\data\\a.txt"] = b"a"

        assert self.fs.path_exists("C:\\data\\a.txt")
        assert self.fs.path_exists("C:\\data\\a.txt", check_files=True, check_folders=False)
        assert not self.fs.path_exists("C:\\data\\a.txt", check_files=False, check_folders=True)
        assert self.fs.path_exists("C:\\data", check_files=False, check_folders=True)
        assert not self.fs.path_exists("C:\\missing")

    def test_path_exists_without_flags_skips_remote(self):
        assert not self.fs.path_exists("C:\\anything", check_files=False, check_folders=False)
        assert self.remote.calls == []

    def test_put_then_get_small(self):
        self.fs.put_file("C:\\out\\hello.txt", HELLO)

        assert self.fs.get_file_bytes("C:\\out\\hello.txt") == HELLO
        assert self.remote.count(WRITE_BYTES_SCRIPT) == 1
        assert self.remote.count(JOIN_CHUNKS_SCRIPT) == 0

    def test_put_creates_parent_directory(self):
        self.fs.put_file("C:\\deep\\nested\\file.bin", b"\x00")
        assert self.fs.path_exists("C:\\deep\\nested", check_files=False, check_folders=True)

    def test_put_then_get_chunked(self):
        client, factory = make_client(chunk_size_bytes=1024)
        payload = os.urandom(1024 * 3 + 17)

        client.file_system.put_file("C:\\big.bin", payload)

        assert client.file_system.get_file_bytes("C:\\big.bin") == payload
        assert factory.remote.count(JOIN_CHUNKS_SCRIPT) == 1
        assert factory.remote.count(WRITE_BYTES_SCRIPT) == 4
        # chunk files are always removed
        assert set(factory.remote.files) == {"C:\\big.bin"}
        client.close()

    def test_payload_at_threshold_is_chunked(self):
        client, factory = make_client(chunk_size_bytes=16)
        client.file_system.put_file("C:\\exact.bin", b"x" * 16)

        assert factory.remote.files["C:\\exact.bin"] == b"x" * 16
        assert factory.remote.count(JOIN_CHUNKS_SCRIPT) == 1
        client.close()

    def test_chunked_verification_failure(self):
        client, factory = make_client(chunk_size_bytes=8)
        factory.remote.corrupt_joins = True

        with pytest.raises(TransferVerificationError):
            client.file_system.put_file("C:\\bad.bin", b"0123456789abcdef")

        assert set(factory.remote.files) == {"C:\\bad.bin"}
        client.close()

    def test_put_is_idempotent(self):
        self.fs.put_file("C:\\hello.txt", HELLO)
        self.fs.put_file("C:\\hello.txt", HELLO)

        assert self.remote.count(WRITE_BYTES_SCRIPT) == 1

    def test_put_overwrites_changed_contents(self):
        self.fs.put_file("C:\\hello.txt", HELLO)
        self.fs.put_file("C:\\hello.txt", b"HELLO WORLD?")

        assert self.remote.files["C:\\hello.txt"] == b"HELLO WORLD?"
        assert self.remote.count(WRITE_BYTES_SCRIPT) == 2

    def test_size_mismatch_skips_remote_hash(self):
        self.remote.files["C:\\hello.txt"] = b"short"

        assert not self.fs.verify_file_contents("C:\\hello.txt", HELLO)
        assert self.remote.count("Get-FileHash") == 0

    def test_verify_missing_file(self):
        assert not self.fs.verify_file_contents("C:\\nope.txt", HELLO)

    def test_unblock(self):
        self.fs.put_file("C:\\a.txt", b"a", unblock=True)
        self.fs.put_file("C:\\a.txt", b"a", unblock=True)
        self.fs.put_file("C:\\b.txt", b"b", unblock=False)

        # unblocking does not depend on whether anything was written
        assert self.remote.unblocked == ["C:\\a.txt", "C:\\a.txt"]

    def test_hello_world_hash(self):
        self.fs.put_file("C:\\hello.txt", HELLO)

        assert self.fs.get_file_hash("C:\\hello.txt") == HELLO_MD5
        assert self.fs.get_file_hash("C:\\hello.txt", "MD5+LENGTH") == f"{HELLO_MD5}::12"
        assert self.fs.get_file_hash("C:\\hello.txt", "md5+length") == f"{HELLO_MD5}::12"

    def test_length_suffixed_hash_matches_parts(self):
        self.remote.files["C:\\x.bin"] = os.urandom(100)

        combined = self.fs.get_file_hash("C:\\x.bin", "MD5+LENGTH")
        assert combined == self.fs.get_file_hash("C:\\x.bin", "MD5") + "::" + str(self.fs.get_file_size("C:\\x.bin"))

    def test_requested_algorithm_is_used(self):
        self.remote.files["C:\\hello.txt"] = HELLO

        assert self.fs.get_file_hash("C:\\hello.txt", "SHA256") == compute_hash(HELLO, "SHA256")
        hash_calls = [c for c in self.remote.calls if c[0].text == "Get-FileHash"]
        assert hash_calls[-1][0].get_parameter("Algorithm") == "SHA256"

    def test_unsupported_hash_option(self):
        with pytest.raises(ValueError):
            self.fs.get_file_hash("C:\\hello.txt", "MD5+CRC")

    def test_get_missing_file_returns_none(self):
        assert self.fs.get_file_bytes("C:\\missing.bin") is None
        assert self.fs.get_file_text("C:\\missing.txt") is None

    def test_get_file_text_detects_bom(self):
        self.remote.files["C:\\u16.txt"] = codecs.BOM_UTF16_LE + "héllo".encode("utf-16-le")
        self.remote.files["C:\\u8.txt"] = codecs.BOM_UTF8 + "héllo".encode("utf-8")

        assert self.fs.get_file_text("C:\\u16.txt") == "héllo"
        assert self.fs.get_file_text("C:\\u8.txt") == "héllo"

    def test_get_file_text_default_encoding(self):
        self.remote.files["C:\\latin.txt"] = "héllo".encode("latin-1")
        assert self.fs.get_file_text("C:\\latin.txt", encoding="latin-1") == "héllo"

    def test_delete_file(self):
        self.remote.files["C:\\a.txt"] = b"a"
        self.fs.delete_file("C:\\a.txt")
        assert "C:\\a.txt" not in self.remote.files

    def test_delete_missing_file_is_noop(self):
        self.fs.delete_file("C:\\a.txt")
        assert self.remote.count("Remove-Item") == 0

    def test_delete_folder_recursively(self):
        self.remote.files["C:\\dir\\a.txt"] = b"a"
        self.remote.files["C:\\dir\\sub\\b.txt"] = b"b"
        self.remote.files["C:\\keep.txt"] = b"k"

        self.fs.delete_folder_recursively("C:\\dir")

        assert set(self.remote.files) == {"C:\\keep.txt"}
        remove = [c for c in self.remote.calls if c[0].text == "Remove-Item"][0][0]
        assert remove.has_switch("Recurse") and remove.has_switch("Force")

    def test_delete_missing_folder_is_noop(self):
        self.fs.delete_folder_recursively("C:\\nothing")
        assert self.remote.count("Remove-Item") == 0

    def test_async_round_trip(self):
        asyncio.run(self.fs.put_file_async("C:\\async.bin", b"payload"))
        assert asyncio.run(self.fs.get_file_bytes_async("C:\\async.bin")) == b"payload"


class TestHelpers:
    """Test cases for module helpers."""

    def test_compute_hash(self):
        assert compute_hash(HELLO, "MD5") == HELLO_MD5
        assert compute_hash(b"", "sha-256") == compute_hash(b"", "SHA256")

    @pytest.mark.parametrize("bom,encoding", [
        (codecs.BOM_UTF32_LE, "utf-32-le"),
        (codecs.BOM_UTF32_BE, "utf-32-be"),
        (codecs.BOM_UTF16_BE, "utf-16-be"),
    ])
    def test_decode_text_boms(self, bom, encoding):
        assert decode_text(bom + "abc".encode(encoding)) == "abc"
