"""
Tests for ZipExtractor.
"""

import hashlib
import io
import threading
import zipfile

import pytest

from fakes import make_client
from psclient.application.zip_extractor import entry_target, normalize_output_path
from psclient.domain.errors import OperationCancelledError
from psclient.domain.host import HostCallbacks
from psclient.domain.records import ProgressRecordType


def build_archive(entries):
    """Create an in-memory zip from (name, data) pairs; data None makes a directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            if data is None:
                zf.writestr(zipfile.ZipInfo(name), b"")
            else:
                zf.writestr(name, data)
    buffer.seek(0)
    return zipfile.ZipFile(buffer)


class TestZipExtractor:
    """Test cases for ZipExtractor.extract_to."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client, self.factory = make_client()
        self.remote = self.factory.remote
        self.progress = []
        self.client.session.set_callbacks(HostCallbacks(
            write_progress=lambda source_id, record: self.progress.append((source_id, record))
        ))

    def teardown_method(self):
        """Clean up test fixtures."""
        self.client.close()

    def test_directory_and_file(self):
        payload = b"print('hi')\n"
        archive = build_archive([("empty/", None), ("tool.py", payload)])

        self.client.zip_extractor.extract_to(archive, "C:\\out")

        assert self.remote.is_dir("C:\\out\\empty")
        assert self.remote.files == {"C:\\out\\tool.py": payload}
        assert self.client.file_system.get_file_hash("C:\\out\\tool.py", "MD5+LENGTH") == (
            f"{hashlib.md5(payload).hexdigest().upper()}::{len(payload)}"
        )

    def test_nested_entries_use_remote_separator(self):
        archive = build_archive([("a/b/c.txt", b"c")])
        self.client.zip_extractor.extract_to(archive, "C:\\out\\")

        assert "C:\\out\\a\\b\\c.txt" in self.remote.files

    def test_progress_reporting(self):
        archive = build_archive([("one.txt", b"1" * 10), ("two.txt", b"2" * 30)])

        self.client.zip_extractor.extract_to(archive, "C:\\out")

        source_ids = {source_id for source_id, _ in self.progress}
        assert len(source_ids) == 1
        records = [record for _, record in self.progress]
        assert [r.percent_complete for r in records] == [0, 25, 100]
        assert records[0].seconds_remaining == -1
        assert records[0].status_description == "one.txt"
        assert "C:\\out\\" in records[0].activity
        assert records[-1].record_type == ProgressRecordType.COMPLETED
        assert records[-1].seconds_remaining == 0

    def test_existing_files_are_not_rewritten(self):
        archive = build_archive([("a.txt", b"a")])
        self.client.zip_extractor.extract_to(archive, "C:\\out")
        writes = len(self.remote.calls)

        self.client.zip_extractor.extract_to(archive, "C:\\out")

        new_calls = [c[0].text for c in self.remote.calls[writes:]]
        assert "Get-FileHash" in new_calls
        assert all("WriteAllBytes" not in text for text in new_calls)

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            self.client.zip_extractor.extract_to(build_archive([("a.txt", b"a")]), "C:\\out", cancel)
        assert self.remote.files == {}

    def test_cancel_mid_archive_keeps_extracted(self):
        cancel = threading.Event()
        archive = build_archive([("a.txt", b"a"), ("b.txt", b"b"), ("c.txt", b"c")])

        def on_progress(source_id, record):
            if record.status_description == "b.txt":
                cancel.set()

        self.client.session.set_callbacks(HostCallbacks(write_progress=on_progress))
        # progress for b.txt is written after its cancellation check, so b.txt is still extracted
        with pytest.raises(OperationCancelledError):
            self.client.zip_extractor.extract_to(archive, "C:\\out", cancel)

        assert set(self.remote.files) == {"C:\\out\\a.txt", "C:\\out\\b.txt"}

    @pytest.mark.parametrize("name", [
        "../../Windows/evil.dll",
        "tools/../../evil.dll",
        "C:/Windows/evil.dll",
        "..\\evil.dll",
    ])
    def test_entries_outside_output_are_rejected(self, name):
        archive = build_archive([("ok.txt", b"ok"), (name, b"x")])

        with pytest.raises(ValueError):
            self.client.zip_extractor.extract_to(archive, "C:\\out")
        assert self.remote.files == {}

    def test_leading_separator_stays_under_output(self):
        self.client.zip_extractor.extract_to(build_archive([("/abs/file.txt", b"f")]), "C:\\out")
        assert set(self.remote.files) == {"C:\\out\\abs\\file.txt"}


class TestNormalizeOutputPath:
    """Test cases for normalize_output_path."""

    @pytest.mark.parametrize("raw,expected", [
        ("C:\\out", "C:\\out\\"),
        ("C:\\out\\\\", "C:\\out\\"),
        ("C:/out/", "C:\\out\\"),
        ("/tmp/out", "/tmp/out/"),
        ("/tmp/out//", "/tmp/out/"),
    ])
    def test_trailing_separator(self, raw, expected):
        assert normalize_output_path(raw) == expected


class TestEntryTarget:
    """Test cases for entry_target."""

    @pytest.mark.parametrize("output,name,expected", [
        ("C:\\out\\", "a/b.txt", "C:\\out\\a\\b.txt"),
        ("C:\\out\\", "./a/./b.txt", "C:\\out\\a\\b.txt"),
        ("C:\\out\\", "\\a\\b.txt", "C:\\out\\a\\b.txt"),
        ("/srv/out/", "a\\b.txt", "/srv/out/a/b.txt"),
        ("C:\\out\\", "dir/", "C:\\out\\dir"),
    ])
    def test_mapping(self, output, name, expected):
        assert entry_target(output, name) == expected

    @pytest.mark.parametrize("name", ["../x", "a/../../x", "D:evil.txt", "", "./"])
    def test_rejected(self, name):
        with pytest.raises(ValueError):
            entry_target("C:\\out\\", name)
