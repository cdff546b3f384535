"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/store.py
Durable manifest, state log and byte ledger of one hashed tree.

FILES (per side)
----------------
<name>[_source]_manifest.txt   hashdeep-compatible manifest: header + "size,digest,path"
<name>_{source,dest}_state.txt one path per committed file, in enumeration order
<name>_{source,dest}_bytes.txt one size per committed file, aligned with the state log
<manifest>.lock                advisory lock (filelock), held per critical section
<manifest>.complete            JSON completion marker

ORDERING
--------
The manifest is always written (and fsync'ed) before the ledger and state log.
A file is done iff it appears in both the manifest and the state log, so a crash
can only leave a manifest entry without a state row (re-hashed or recovered on
resume), never the opposite.
"""

import json
import os
import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, TextIO

from filelock import FileLock, Timeout

from diskproof.core.exceptions import (
    AlgorithmMismatchError, LockUnavailableError, ManifestFormatError)
from diskproof.core.models import (
    EngineConfig, HashAlgorithm, Manifest, ManifestEntry, ManifestHeader, Side)

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
ERRORS = "surrogateescape"  # keeps undecodable file names byte-exact

HEADER_PREFIX = "%%%%"
COMMENT_PREFIX = "##"
HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


@dataclass(frozen=True)
class ManifestPaths:
    """Locations of every durable file belonging to one side of a migration."""
    manifest: str
    state: str
    ledger: str

    @property
    def lock(self) -> str:
        return f"{self.manifest}.lock"

    @property
    def complete_marker(self) -> str:
        return f"{self.manifest}.complete"

    @classmethod
    def for_side(cls, manifest_dir: str, name: str, side: Side) -> "ManifestPaths":
        """
        The destination manifest carries no side infix:
        <name>_manifest.txt next to <name>_source_manifest.txt.
        """
        if side == Side.SOURCE:
            manifest = f"{name}_source_manifest.txt"
        else:
            manifest = f"{name}_manifest.txt"
        return cls(
            manifest=os.path.join(manifest_dir, manifest),
            state=os.path.join(manifest_dir, f"{name}_{side.value}_state.txt"),
            ledger=os.path.join(manifest_dir, f"{name}_{side.value}_bytes.txt"),
        )


# =============================
# Reading
# =============================

def _open_text(path: str, mode: str = "r") -> TextIO:
    return open(path, mode, encoding=ENCODING, errors=ERRORS, newline="\n")


def _is_hex(digest: str) -> bool:
    return all(c in HEX_DIGITS for c in digest)


def count_lines(path: str) -> int:
    """Number of complete (newline-terminated) lines; 0 for a missing file."""
    if not os.path.exists(path):
        return 0
    count = 0
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(EngineConfig.READ_CHUNK_SIZE), b""):
            count += block.count(b"\n")
    return count


def sum_ledger(path: str) -> int:
    """Sum of a byte ledger; unparsable rows are ignored."""
    if not os.path.exists(path):
        return 0
    total = 0
    with _open_text(path) as f:
        for line in f:
            if not line.endswith("\n"):
                break
            try:
                total += int(line)
            except ValueError:
                continue
    return total


def parse_header_lines(lines: Iterable[str], source: str = "") -> ManifestHeader:
    """
    Builds a ManifestHeader from the leading "%%%%" and "##" lines.
    Raises ManifestFormatError if the column line is missing or names an unknown algorithm.
    """
    version = None
    algorithm = None
    invoked_from = ""
    command = ""
    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith(HEADER_PREFIX):
            body = line[len(HEADER_PREFIX):].strip()
            if body.startswith("size,"):
                columns = body.split(",")
                if len(columns) < 3:
                    raise ManifestFormatError(f"Malformed column header in {source}: {line!r}")
                try:
                    algorithm = HashAlgorithm(columns[1].strip().lower())
                except ValueError:
                    raise ManifestFormatError(
                        f"Unsupported algorithm '{columns[1]}' in {source}")
            elif version is None:
                version = body
        elif line.startswith("## Invoked from:"):
            invoked_from = line[len("## Invoked from:"):].strip()
        elif line.startswith("## $"):
            command = line[len("## $"):].strip()
        elif line.startswith(COMMENT_PREFIX):
            continue
        else:
            break
    if algorithm is None:
        raise ManifestFormatError(f"Manifest header is missing or incomplete: {source}")
    return ManifestHeader(
        algorithm=algorithm,
        version=version or EngineConfig.MANIFEST_VERSION,
        invoked_from=invoked_from,
        command=command,
    )


def read_header(path: str) -> ManifestHeader:
    with _open_text(path) as f:
        head = []
        for line in f:
            if not (line.startswith(HEADER_PREFIX) or line.startswith(COMMENT_PREFIX)):
                break
            head.append(line)
    return parse_header_lines(head, source=path)


def iter_entries(path: str) -> Iterator[ManifestEntry]:
    """Yields parseable entries in file order; header, comments and junk are skipped."""
    with _open_text(path) as f:
        for line in f:
            if not line[:1].isdigit():
                continue
            try:
                yield ManifestEntry.from_line(line)
            except ValueError:
                continue


def read_manifest(path: str) -> Manifest:
    """
    Parses a whole manifest.
    Only lines starting with a digit are entries; the path is everything after
    the second comma. Malformed entry lines, including digests of the wrong
    length for the header algorithm, are counted and skipped.

    Raises:
        FileNotFoundError: If the manifest does not exist
        ManifestFormatError: If the header is missing or unreadable
    """
    header_lines: List[str] = []
    entries: List[ManifestEntry] = []
    malformed = 0
    in_header = True
    with _open_text(path) as f:
        for line in f:
            if in_header and (line.startswith(HEADER_PREFIX) or line.startswith(COMMENT_PREFIX)):
                header_lines.append(line)
                continue
            in_header = False
            if not line[:1].isdigit():
                continue
            if not line.endswith("\n"):
                # Torn final write from a crash
                malformed += 1
                continue
            try:
                entries.append(ManifestEntry.from_line(line))
            except ValueError:
                malformed += 1

    header = parse_header_lines(header_lines, source=path)
    digest_length = header.algorithm.hex_length
    valid = [e for e in entries if len(e.digest) == digest_length and _is_hex(e.digest)]
    malformed += len(entries) - len(valid)
    if malformed:
        logger.warning(f"{path}: skipped {malformed} malformed entry line(s)")
    return Manifest(
        header=header,
        entries=valid,
        path=path,
        malformed_lines=malformed,
        complete=os.path.exists(f"{path}.complete"),
    )


def read_sizes_file(path: str) -> int:
    """
    Total bytes from a precomputed sizes file ("size path" per line), as produced
    by `find -printf '%s %p\\n'`. Lets progress show byte percentages without
    stat-ing a slow tree twice.
    """
    total = 0
    with _open_text(path) as f:
        for line in f:
            head = line.split(" ", 1)[0]
            if head.isdigit():
                total += int(head)
    return total


class LogTail:
    """
    Incremental reader of an append-only log.
    poll() returns only the complete lines written since the previous call;
    a trailing partial line is kept until its newline arrives.

    `generation` goes up whenever the file shrinks (torn-tail repair, ledger
    trim). The next poll() then returns the whole file again, so callers
    holding running totals must start over.
    """

    def __init__(self, path: str):
        self.path = path
        self.generation = 0
        self._offset = 0
        self._partial = b""

    def poll(self) -> List[str]:
        try:
            size = os.path.getsize(self.path)
        except OSError:
            return []
        if size < self._offset:
            logger.debug(f"{self.path} shrank, re-reading from the start")
            self._offset = 0
            self._partial = b""
            self.generation += 1
        if size == self._offset:
            return []

        with open(self.path, "rb") as f:
            f.seek(self._offset)
            data = f.read(size - self._offset)
        self._offset += len(data)

        data = self._partial + data
        *complete, self._partial = data.split(b"\n")
        return [line.decode(ENCODING, ERRORS) for line in complete]


# =============================
# Writing
# =============================

class ManifestStore:
    """
    Append-only writer for one (manifest, state, ledger) triple.

    Usage:
        store = ManifestStore.open(paths, algorithm=HashAlgorithm.SHA256,
                                   invoked_from="/Volumes/Old", command="diskproof hash ...")
        with store:
            store.record(entry)
    """

    def __init__(self, paths: ManifestPaths, header: ManifestHeader,
                 lock_timeout: float = EngineConfig.LOCK_TIMEOUT):
        self.paths = paths
        self.header = header
        self.lock_timeout = lock_timeout
        self._lock = FileLock(paths.lock)
        self._manifest_fh: Optional[TextIO] = None
        self._state_fh: Optional[TextIO] = None
        self._ledger_fh: Optional[TextIO] = None

    @property
    def algorithm(self) -> HashAlgorithm:
        return self.header.algorithm

    @classmethod
    def open(
            cls,
            paths: ManifestPaths,
            algorithm: Optional[HashAlgorithm] = None,
            invoked_from: str = "",
            command: str = "",
            lock_timeout: float = EngineConfig.LOCK_TIMEOUT,
    ) -> "ManifestStore":
        """
        Creates the manifest header on first use, otherwise adopts the existing
        header's algorithm.

        Raises:
            AlgorithmMismatchError: If `algorithm` differs from an existing header
            ManifestFormatError: If an existing manifest has no readable header
            LockUnavailableError: If the advisory lock cannot be acquired
        """
        os.makedirs(os.path.dirname(paths.manifest) or ".", exist_ok=True)
        store = cls(paths, ManifestHeader(algorithm=algorithm or HashAlgorithm.SHA256,
                                          invoked_from=invoked_from, command=command),
                    lock_timeout=lock_timeout)

        with store.locked():
            if os.path.exists(paths.manifest) and os.path.getsize(paths.manifest) > 0:
                existing = read_header(paths.manifest)
                if algorithm is not None and existing.algorithm != algorithm:
                    raise AlgorithmMismatchError(
                        f"{paths.manifest} was created with {existing.algorithm.value}, "
                        f"refusing to append {algorithm.value} digests")
                store.header = existing
                _repair_torn_tail(paths.manifest)
                logger.debug(f"Resuming manifest {paths.manifest} ({existing.algorithm.value})")
            else:
                with _open_text(paths.manifest, "w") as f:
                    f.write("\n".join(store.header.to_lines()) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                logger.info(f"Created manifest {paths.manifest} ({store.algorithm.value})")

            for log_path in (paths.state, paths.ledger):
                if os.path.exists(log_path):
                    _repair_torn_tail(log_path)
                else:
                    _open_text(log_path, "a").close()
            _align_ledger(paths.ledger, count_lines(paths.state))

        return store

    # ----- locking -----

    @contextmanager
    def locked(self):
        """Holds the advisory lock for one critical section."""
        try:
            self._lock.acquire(timeout=self.lock_timeout)
        except Timeout as e:
            raise LockUnavailableError(
                f"Timed out acquiring lock {self.paths.lock} after {self.lock_timeout}s. "
                f"Another process may be writing this manifest.") from e
        try:
            yield
        finally:
            self._lock.release()

    # ----- low-level appends (caller holds the lock) -----

    def append_entry(self, size: int, digest: str, path: str) -> None:
        """Appends one manifest line and forces it to disk."""
        line = ManifestEntry(size=size, digest=digest, path=path).to_line()
        fh = self._manifest()
        fh.write(line + "\n")
        fh.flush()
        os.fsync(fh.fileno())

    def append_state(self, path: str) -> None:
        fh = self._state()
        fh.write(path + "\n")
        fh.flush()

    def append_bytes(self, size: int) -> None:
        fh = self._ledger()
        fh.write(f"{size}\n")
        fh.flush()

    # ----- transactional operations -----

    def record(self, entry: ManifestEntry) -> None:
        """Manifest first, then ledger and state, under one lock acquisition."""
        with self.locked():
            self.append_entry(entry.size, entry.digest, entry.path)
            self._commit_unlocked(entry)

    def record_manifest(self, entry: ManifestEntry) -> None:
        """First half of an ordered commit: durable manifest entry only."""
        with self.locked():
            self.append_entry(entry.size, entry.digest, entry.path)

    def commit(self, entry: ManifestEntry) -> None:
        """Second half of an ordered commit. The manifest entry must already exist."""
        with self.locked():
            self._commit_unlocked(entry)

    def _commit_unlocked(self, entry: ManifestEntry) -> None:
        self.append_bytes(entry.size)
        self.append_state(entry.path)
        os.fsync(self._ledger().fileno())
        os.fsync(self._state().fileno())

    # ----- queries -----

    def resume_offset(self) -> int:
        """Row count of the state log: how many enumerated files are already done."""
        self._flush_all()
        return count_lines(self.paths.state)

    def bytes_done(self) -> int:
        self._flush_all()
        return sum_ledger(self.paths.ledger)

    def last_state_path(self) -> Optional[str]:
        """Last committed path, used to sanity-check the resume point."""
        self._flush_all()
        last = None
        with _open_text(self.paths.state) as f:
            for line in f:
                if line.endswith("\n"):
                    last = line[:-1]
        return last

    def manifest_entry_count(self) -> int:
        self._flush_all()
        return sum(1 for _ in iter_entries(self.paths.manifest))

    def manifest_entries_for(self, paths: Iterable[str]) -> Dict[str, ManifestEntry]:
        """Existing manifest entries for the given paths (last one wins)."""
        wanted = set(paths)
        if not wanted:
            return {}
        self._flush_all()
        found: Dict[str, ManifestEntry] = {}
        for entry in iter_entries(self.paths.manifest):
            if entry.path in wanted:
                found[entry.path] = entry
        return found

    # ----- completion marker -----

    def mark_complete(self, files: int, total_bytes: int) -> None:
        payload = {
            "completed_at": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "files": files,
            "bytes": total_bytes,
            "algorithm": self.algorithm.value,
        }
        tmp_path = f"{self.paths.complete_marker}.tmp"
        with self.locked():
            with open(tmp_path, "w", encoding=ENCODING) as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.paths.complete_marker)
        logger.info(f"Marked {self.paths.manifest} complete ({files} files)")

    def clear_complete(self) -> bool:
        """Removes a stale completion marker. Returns True if one existed."""
        with self.locked():
            try:
                os.remove(self.paths.complete_marker)
            except FileNotFoundError:
                return False
        logger.info(f"Cleared completion marker of {self.paths.manifest}")
        return True

    def is_complete(self) -> bool:
        return os.path.exists(self.paths.complete_marker)

    def read_completion(self) -> Optional[dict]:
        return read_completion(self.paths.manifest)

    # ----- lifecycle -----

    def close(self) -> None:
        for fh in (self._manifest_fh, self._state_fh, self._ledger_fh):
            if fh is not None:
                fh.close()
        self._manifest_fh = self._state_fh = self._ledger_fh = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _manifest(self) -> TextIO:
        if self._manifest_fh is None:
            self._manifest_fh = _open_text(self.paths.manifest, "a")
        return self._manifest_fh

    def _state(self) -> TextIO:
        if self._state_fh is None:
            self._state_fh = _open_text(self.paths.state, "a")
        return self._state_fh

    def _ledger(self) -> TextIO:
        if self._ledger_fh is None:
            self._ledger_fh = _open_text(self.paths.ledger, "a")
        return self._ledger_fh

    def _flush_all(self) -> None:
        for fh in (self._manifest_fh, self._state_fh, self._ledger_fh):
            if fh is not None:
                fh.flush()

    def __repr__(self):
        return f"<ManifestStore manifest={self.paths.manifest}, algorithm={self.algorithm.value}>"


def read_completion(manifest_path: str) -> Optional[dict]:
    """Contents of a manifest's completion marker, or None if it has none."""
    marker = f"{manifest_path}.complete"
    try:
        with open(marker, encoding=ENCODING) as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable completion marker {marker}: {e}")
        return {}


def _repair_torn_tail(path: str) -> None:
    """Drops a trailing partial line left by a crash mid-write."""
    with open(path, "rb+") as f:
        f.seek(0, os.SEEK_END)
        size = f.tell()
        if size == 0:
            return
        f.seek(size - 1)
        if f.read(1) == b"\n":
            return
        # Walk back to the previous newline
        pos = size - 1
        block = 4096
        while pos > 0:
            start = max(0, pos - block)
            f.seek(start)
            chunk = f.read(pos - start)
            idx = chunk.rfind(b"\n")
            if idx != -1:
                pos = start + idx + 1
                break
            pos = start
        f.truncate(pos)
        f.flush()
        os.fsync(f.fileno())
    logger.warning(f"Discarded a torn final line in {path}")


def _align_ledger(ledger_path: str, state_rows: int) -> None:
    """The ledger is written just before the state log; trim any row without a state partner."""
    ledger_rows = count_lines(ledger_path)
    if ledger_rows == state_rows:
        return
    if ledger_rows < state_rows:
        logger.warning(f"{ledger_path} has {ledger_rows} rows for {state_rows} state rows; "
                       f"byte progress will under-report")
        return
    with _open_text(ledger_path) as f:
        kept = [line for _, line in zip(range(state_rows), f)]
    with _open_text(ledger_path, "w") as f:
        f.writelines(kept)
        f.flush()
        os.fsync(f.fileno())
    logger.debug(f"Trimmed {ledger_rows - state_rows} orphan ledger row(s) in {ledger_path}")
