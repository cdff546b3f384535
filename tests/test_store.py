"""
Unit tests for ManifestStore, read_manifest and LogTail.
Verifies the hashdeep header, manifest-first appends, crash repair and the completion marker.
"""
import json
import os
import threading

import pytest
from filelock import FileLock

from diskproof.core.exceptions import (
    AlgorithmMismatchError, LockUnavailableError, ManifestFormatError)
from diskproof.core.models import HashAlgorithm, ManifestEntry, Side
from diskproof.core.store import (
    LogTail, ManifestPaths, ManifestStore, count_lines, read_manifest, read_sizes_file)


@pytest.fixture
def paths(temp_dir) -> ManifestPaths:
    return ManifestPaths.for_side(str(temp_dir / "_manifests"), "Project_2015", Side.SOURCE)


class TestManifestPaths:
    def test_source_naming(self, temp_dir):
        paths = ManifestPaths.for_side(str(temp_dir), "3", Side.SOURCE)
        assert os.path.basename(paths.manifest) == "3_source_manifest.txt"
        assert os.path.basename(paths.state) == "3_source_state.txt"
        assert os.path.basename(paths.ledger) == "3_source_bytes.txt"

    def test_dest_naming(self, temp_dir):
        paths = ManifestPaths.for_side(str(temp_dir), "3", Side.DEST)
        assert os.path.basename(paths.manifest) == "3_manifest.txt"
        assert os.path.basename(paths.state) == "3_dest_state.txt"
        assert paths.lock == paths.manifest + ".lock"
        assert paths.complete_marker == paths.manifest + ".complete"


class TestManifestStore:
    """Test durable appends."""

    def test_open_writes_hashdeep_header(self, paths):
        ManifestStore.open(paths, HashAlgorithm.SHA256, invoked_from="/Volumes/Old",
                           command="diskproof hash").close()

        with open(paths.manifest) as f:
            lines = f.read().splitlines()
        assert lines == [
            "%%%% HASHDEEP-1.0",
            "%%%% size,sha256,filename",
            "## Invoked from: /Volumes/Old",
            "## $ diskproof hash",
            "##",
        ]
        assert os.path.exists(paths.state)
        assert os.path.exists(paths.ledger)

    def test_reopen_adopts_existing_algorithm(self, paths):
        ManifestStore.open(paths, HashAlgorithm.XXH64).close()
        with ManifestStore.open(paths) as store:
            assert store.algorithm == HashAlgorithm.XXH64

    def test_reopen_with_other_algorithm_raises(self, paths):
        ManifestStore.open(paths, HashAlgorithm.SHA256).close()
        with pytest.raises(AlgorithmMismatchError):
            ManifestStore.open(paths, HashAlgorithm.XXH64)

    def test_record_appends_all_three_logs(self, paths):
        with ManifestStore.open(paths) as store:
            store.record(ManifestEntry(10, "ab" * 32, "/src/a, with comma.txt"))
            store.record(ManifestEntry(0, "cd" * 32, "/src/empty"))

            assert store.resume_offset() == 2
            assert store.bytes_done() == 10
            assert store.last_state_path() == "/src/empty"

        manifest = read_manifest(paths.manifest)
        assert [e.path for e in manifest.entries] == ["/src/a, with comma.txt", "/src/empty"]

    def test_record_manifest_does_not_advance_offset(self, paths):
        entry = ManifestEntry(5, "ef" * 32, "/src/b")
        with ManifestStore.open(paths) as store:
            store.record_manifest(entry)
            assert store.resume_offset() == 0
            assert store.manifest_entry_count() == 1

            store.commit(entry)
            assert store.resume_offset() == 1
            assert store.manifest_entry_count() == 1

    def test_manifest_entries_for_returns_last_entry(self, paths):
        with ManifestStore.open(paths) as store:
            store.record_manifest(ManifestEntry(1, "11", "/src/a"))
            store.record_manifest(ManifestEntry(2, "22", "/src/a"))
            store.record_manifest(ManifestEntry(3, "33", "/src/b"))

            found = store.manifest_entries_for(["/src/a", "/src/missing"])

        assert set(found) == {"/src/a"}
        assert found["/src/a"].digest == "22"

    def test_torn_lines_are_repaired_on_open(self, paths):
        with ManifestStore.open(paths) as store:
            store.record(ManifestEntry(1, "11", "/src/a"))

        # Simulate a crash in the middle of the next appends
        with open(paths.manifest, "a") as f:
            f.write("2,22,/src/b")
        with open(paths.state, "a") as f:
            f.write("/src/b")

        with ManifestStore.open(paths) as store:
            assert store.resume_offset() == 1
            assert store.manifest_entry_count() == 1
            store.record(ManifestEntry(2, "22", "/src/b"))
            assert store.last_state_path() == "/src/b"

    def test_orphan_ledger_row_is_trimmed(self, paths):
        with ManifestStore.open(paths) as store:
            store.record(ManifestEntry(7, "11", "/src/a"))
        # Crash after the ledger append, before the state append
        with open(paths.ledger, "a") as f:
            f.write("99\n")

        with ManifestStore.open(paths) as store:
            assert count_lines(paths.ledger) == 1
            assert store.bytes_done() == 7

    def test_completion_marker_lifecycle(self, paths):
        with ManifestStore.open(paths) as store:
            assert not store.is_complete()
            store.mark_complete(files=3, total_bytes=1234)
            assert store.is_complete()

            with open(paths.complete_marker) as f:
                marker = json.load(f)
            assert marker["files"] == 3
            assert marker["bytes"] == 1234
            assert marker["algorithm"] == "sha256"
            assert "completed_at" in marker

            assert store.clear_complete() is True
            assert not store.is_complete()
            assert store.clear_complete() is False

    def test_lock_timeout_raises(self, paths):
        store = ManifestStore.open(paths, lock_timeout=0.1)
        other = FileLock(paths.lock)
        with other:
            # Separate lock objects conflict even inside one process
            errors = []

            def attempt():
                try:
                    store.record(ManifestEntry(1, "11", "/src/a"))
                except LockUnavailableError as e:
                    errors.append(e)

            worker = threading.Thread(target=attempt)
            worker.start()
            worker.join()
        store.close()

        assert len(errors) == 1


class TestReadManifest:
    """Test tolerant parsing."""

    def test_ignores_non_entry_lines_and_counts_malformed(self, temp_dir):
        path = temp_dir / "m.txt"
        path.write_text(
            "%%%% HASHDEEP-1.0\n"
            "%%%% size,sha256,filename\n"
            "## Invoked from: /src\n"
            "## $ hashdeep -r\n"
            "##\n"
            f"10,{'aa' * 32},/src/a.txt\n"
            "garbage line\n"
            f"12x,{'bb' * 32},/src/b.txt\n"
            f"5,{'cc' * 32}\n"
            f"7,{'dd' * 32},/src/dir,with,commas/c.txt\n"
        )

        manifest = read_manifest(str(path))

        assert manifest.algorithm == HashAlgorithm.SHA256
        assert manifest.header.invoked_from == "/src"
        assert [e.path for e in manifest.entries] == ["/src/a.txt", "/src/dir,with,commas/c.txt"]
        assert manifest.malformed_lines == 2
        assert manifest.complete is False

    def test_digest_must_match_header_algorithm(self, temp_dir):
        path = temp_dir / "m.txt"
        path.write_text(
            "%%%% HASHDEEP-1.0\n"
            "%%%% size,xxh64,filename\n"
            "##\n"
            "1,0123456789abcdef,/src/ok\n"
            f"2,{'ab' * 32},/src/sha256-length\n"
            "3,0123456789abcdeg,/src/not-hex\n"
        )

        manifest = read_manifest(str(path))

        assert [e.path for e in manifest.entries] == ["/src/ok"]
        assert manifest.malformed_lines == 2

    def test_missing_header_raises(self, temp_dir):
        path = temp_dir / "m.txt"
        path.write_text("10,aa,/src/a.txt\n")
        with pytest.raises(ManifestFormatError):
            read_manifest(str(path))

    def test_unknown_algorithm_raises(self, temp_dir):
        path = temp_dir / "m.txt"
        path.write_text("%%%% HASHDEEP-1.0\n%%%% size,md5,filename\n")
        with pytest.raises(ManifestFormatError):
            read_manifest(str(path))

    def test_completion_marker_is_detected(self, temp_dir):
        path = temp_dir / "m.txt"
        path.write_text("%%%% HASHDEEP-1.0\n%%%% size,xxh64,filename\n##\n")
        (temp_dir / "m.txt.complete").write_text("{}")

        manifest = read_manifest(str(path))

        assert manifest.complete is True
        assert manifest.algorithm == HashAlgorithm.XXH64


class TestLogTail:
    def test_returns_only_new_complete_lines(self, temp_dir):
        path = temp_dir / "state.txt"
        tail = LogTail(str(path))
        assert tail.poll() == []

        with open(path, "a") as f:
            f.write("/a\n/b\n/c")
        assert tail.poll() == ["/a", "/b"]

        with open(path, "a") as f:
            f.write("-continued\n/d\n")
        assert tail.poll() == ["/c-continued", "/d"]
        assert tail.poll() == []

    def test_restarts_when_file_shrinks(self, temp_dir):
        path = temp_dir / "state.txt"
        path.write_text("/a\n/b\n")
        tail = LogTail(str(path))
        assert len(tail.poll()) == 2

        assert tail.generation == 0

        path.write_text("/x\n")
        assert tail.poll() == ["/x"]
        assert tail.generation == 1


def test_read_sizes_file(temp_dir):
    path = temp_dir / "sizes.txt"
    path.write_text("100 /src/a\n250 /src/b c\nnot-a-size /src/x\n")
    assert read_sizes_file(str(path)) == 350
