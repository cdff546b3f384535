"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/models.py
Data models and domain values for manifest hashing and migration verification.
"""

import os
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional, Tuple


# =============================
# Enums
# =============================

class HashAlgorithm(Enum):
    """
    Content digest algorithm recorded in a manifest header.
    The value doubles as the hashdeep column name ("size,sha256,filename").
    """
    SHA256 = "sha256"
    XXH64 = "xxh64"

    @property
    def display_name(self) -> str:
        """Human-readable name for console output."""
        mapping = {
            HashAlgorithm.SHA256: "SHA-256",
            HashAlgorithm.XXH64: "xxHash64",
        }
        return mapping.get(self, self.value)

    @property
    def hex_length(self) -> int:
        """Length of the hex digest produced by this algorithm."""
        mapping = {
            HashAlgorithm.SHA256: 64,
            HashAlgorithm.XXH64: 16,
        }
        return mapping[self]

    def __repr__(self) -> str:
        return self.value


class MediaType(Enum):
    """Coarse classification of the medium a tree lives on."""
    SSD = "ssd"
    HDD = "hdd"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        mapping = {
            MediaType.SSD: "Solid state",
            MediaType.HDD: "Rotational",
            MediaType.UNKNOWN: "Unknown",
        }
        return mapping.get(self, self.value)


class Side(Enum):
    """Which end of the migration a manifest describes."""
    SOURCE = "source"
    DEST = "dest"

    @property
    def label(self) -> str:
        return self.name


class PipelineStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"   # finished, but some files could not be hashed
    CANCELLED = "cancelled"
    FAILED = "failed"


class VerificationStatus(str, Enum):
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


class ExitCode(IntEnum):
    OK = 0
    FAILED = 1
    INCOMPLETE = 2
    CANCELLED = 130


# =============================
# Configuration
# =============================

class EngineConfig:
    """Tuning constants shared by the hashing engine."""
    MANIFEST_VERSION = "HASHDEEP-1.0"
    READ_CHUNK_SIZE = 1024 * 1024

    SSD_WORKERS = 8  # no seek penalty, CPU bound
    HDD_WORKERS = 3  # more heads in flight only adds thrash
    UNKNOWN_WORKERS = 3

    PROGRESS_INTERVAL = 5.0
    THROUGHPUT_WINDOW = 6
    LOCK_TIMEOUT = 30.0
    SENTINEL_POLL_INTERVAL = 1.0

    @staticmethod
    def get_worker_count(media: MediaType) -> int:
        if media == MediaType.SSD:
            return EngineConfig.SSD_WORKERS
        elif media == MediaType.HDD:
            return EngineConfig.HDD_WORKERS
        return EngineConfig.UNKNOWN_WORKERS


# ======================
#  Manifest Data Models
# ======================

@dataclass(frozen=True)
class ManifestEntry:
    """
    One hashed file: "size,digest,path".
    Immutable once appended; the same path may appear more than once in a manifest
    after an interrupted run, readers keep the last one.
    """
    size: int
    digest: str
    path: str

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"Negative size for {self.path}")
        if not self.digest:
            raise ValueError(f"Empty digest for {self.path}")
        if not self.path:
            raise ValueError("Empty path in manifest entry")
        if "\n" in self.path or "\r" in self.path:
            raise ValueError(f"Path contains a line break: {self.path!r}")

    def to_line(self) -> str:
        return f"{self.size},{self.digest},{self.path}"

    @classmethod
    def from_line(cls, line: str) -> "ManifestEntry":
        """
        Parses a manifest record. The path is everything after the second comma,
        so paths containing commas survive.
        Raises ValueError for malformed records.
        """
        parts = line.rstrip("\r\n").split(",", 2)
        if len(parts) < 3:
            raise ValueError(f"Expected size,digest,path: {line!r}")
        size_str, digest, path = parts
        return cls(size=int(size_str), digest=digest.strip(), path=path)


@dataclass
class ManifestHeader:
    algorithm: HashAlgorithm
    version: str = EngineConfig.MANIFEST_VERSION
    invoked_from: str = ""
    command: str = ""

    def to_lines(self) -> List[str]:
        return [
            f"%%%% {self.version}",
            f"%%%% size,{self.algorithm.value},filename",
            f"## Invoked from: {self.invoked_from}",
            f"## $ {self.command}",
            "##",
        ]


@dataclass
class Manifest:
    """A fully parsed manifest file."""
    header: ManifestHeader
    entries: List[ManifestEntry] = field(default_factory=list)
    path: Optional[str] = None
    malformed_lines: int = 0
    complete: bool = False

    @property
    def algorithm(self) -> HashAlgorithm:
        return self.header.algorithm

    def by_path(self) -> Dict[str, ManifestEntry]:
        """Entries keyed by path; later duplicates replace earlier ones."""
        result: Dict[str, ManifestEntry] = {}
        for entry in self.entries:
            result[entry.path] = entry
        return result

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self):
        return f"<Manifest path={self.path}, algorithm={self.algorithm.value}, entries={len(self.entries)}>"


# =============================
# Hashing results
# =============================

@dataclass
class ScheduleResult:
    """Counters produced by one scheduler run over the pending suffix."""
    pending: int = 0
    hashed: int = 0
    recovered: int = 0      # committed from existing manifest entries, no re-hash
    committed: int = 0      # rows appended to the state log this run
    skipped: int = 0
    bytes_hashed: int = 0
    cancelled: bool = False
    skipped_paths: List[str] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Outcome of hashing one tree."""
    side: Side
    root: str
    status: PipelineStatus
    manifest_path: str = ""
    total_files: int = 0
    resume_offset: int = 0
    schedule: Optional[ScheduleResult] = None
    error: Optional[str] = None
    elapsed: float = 0.0
    media: Optional[MediaType] = None
    workers: int = 0
    enumeration_errors: int = 0

    @property
    def ok(self) -> bool:
        return self.status == PipelineStatus.COMPLETE


@dataclass
class ProgressSnapshot:
    """Point-in-time progress of one pipeline, derived from its durable logs."""
    label: str
    files_done: int
    total_files: Optional[int]
    bytes_done: int
    total_bytes: Optional[int]
    elapsed: float
    running: bool = True
    throughput_bps: Optional[float] = None
    files_per_second: Optional[float] = None
    eta_seconds: Optional[float] = None
    current: List[Tuple[int, str]] = field(default_factory=list)
    hashed_files: int = 0
    hashed_bytes: int = 0

    @property
    def percent(self) -> Optional[float]:
        """Byte-based percentage, falling back to the file-count ratio."""
        if self.total_bytes:
            return min(100.0, self.bytes_done * 100.0 / self.total_bytes)
        if self.total_files:
            return min(100.0, self.files_done * 100.0 / self.total_files)
        return None

    @property
    def awaiting_commit(self) -> int:
        """Files already in the manifest but not yet in the state log."""
        return max(0, self.hashed_files - self.files_done)


@dataclass
class SideStatus:
    """Offline view of one side's durable files, as shown by `status`."""
    side: Side
    manifest_path: str
    exists: bool = False
    algorithm: Optional[HashAlgorithm] = None
    manifest_entries: int = 0
    state_rows: int = 0
    bytes_done: int = 0
    complete: bool = False
    completed_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def caught_up(self) -> bool:
        """Every manifest entry has a state row (nothing left for tail recovery)."""
        return self.exists and self.state_rows >= self.manifest_entries


# =============================
# Comparison results
# =============================

@dataclass
class ComparisonItem:
    """A single offending path in a detailed comparison listing."""
    path: str
    size: int
    source_digest: Optional[str] = None
    dest_digest: Optional[str] = None


@dataclass
class ComparisonResult:
    algorithm: HashAlgorithm
    source_total: int
    dest_total: int
    matched_digests: FrozenSet[str]
    missing_digests: FrozenSet[str]
    extra_digests: FrozenSet[str]
    corrupted: List[ComparisonItem] = field(default_factory=list)
    missing_items: List[ComparisonItem] = field(default_factory=list)
    extra_items: List[ComparisonItem] = field(default_factory=list)
    source_container_entries: int = 0
    dest_container_entries: int = 0
    detailed: bool = False

    @property
    def matched_count(self) -> int:
        return len(self.matched_digests)

    @property
    def missing_count(self) -> int:
        return len(self.missing_digests)

    @property
    def extra_count(self) -> int:
        return len(self.extra_digests)

    @property
    def corrupted_count(self) -> int:
        return len(self.corrupted)

    @property
    def status(self) -> VerificationStatus:
        if (self.missing_count == 0 and self.extra_count == 0 and self.corrupted_count == 0
                and self.source_total == self.dest_total):
            return VerificationStatus.VERIFIED
        return VerificationStatus.FAILED

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED


@dataclass
class DuplicateSet:
    """Paths sharing one digest inside a single manifest."""
    digest: str
    size: int
    paths: List[str]

    @property
    def count(self) -> int:
        return len(self.paths)

    @property
    def wasted_bytes(self) -> int:
        return self.size * (self.count - 1)

    def __repr__(self):
        return f"<DuplicateSet digest={self.digest[:16]}, size={self.size}, count={self.count}>"


@dataclass
class DuplicateReport:
    sets: List[DuplicateSet] = field(default_factory=list)
    total_entries: int = 0

    @property
    def set_count(self) -> int:
        return len(self.sets)

    @property
    def total_wasted(self) -> int:
        return sum(s.wasted_bytes for s in self.sets)


@dataclass
class QuickCompareResult:
    """Size-only comparison of two trees (no hashing)."""
    source_count: int = 0
    dest_count: int = 0
    matches: int = 0
    missing: List[str] = field(default_factory=list)
    size_mismatches: List[Tuple[str, int, int]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def count_mismatch(self) -> bool:
        return self.source_count != self.dest_count

    @property
    def passed(self) -> bool:
        return not self.cancelled and not self.missing and not self.size_mismatches


# =============================
# Parameters
# =============================

def _validate_name(name: str) -> None:
    if not name or not name.strip():
        raise ValueError("Migration name cannot be empty")
    if os.sep in name or (os.altsep and os.altsep in name):
        raise ValueError(f"Migration name cannot contain path separators: {name}")


@dataclass
class HashParams:
    """Parameters for a hashing run with validation."""
    name: str
    manifest_dir: str
    source_root: Optional[str] = None
    dest_root: Optional[str] = None
    algorithm: Optional[HashAlgorithm] = None   # None: take it from an existing header, else SHA-256
    workers: Optional[int] = None               # None: pick from media type
    stop_file: Optional[str] = None
    sizes_file: Optional[str] = None
    measure_sizes: bool = True
    interval: float = EngineConfig.PROGRESS_INTERVAL
    lock_timeout: float = EngineConfig.LOCK_TIMEOUT
    excluded_dirs: List[str] = field(default_factory=list)
    command_line: str = ""

    def __post_init__(self):
        _validate_name(self.name)
        if not self.manifest_dir:
            raise ValueError("Manifest directory cannot be empty")
        if not self.source_root and not self.dest_root:
            raise ValueError("At least one of source or destination root is required")
        if self.workers is not None and self.workers < 1:
            raise ValueError("Worker count must be at least 1")
        if self.interval <= 0:
            raise ValueError("Progress interval must be positive")
        if self.lock_timeout < 0:
            raise ValueError("Lock timeout cannot be negative")

    def roots(self) -> List[Tuple[Side, str]]:
        """Configured (side, root) pairs, source first."""
        result = []
        if self.source_root:
            result.append((Side.SOURCE, self.source_root))
        if self.dest_root:
            result.append((Side.DEST, self.dest_root))
        return result


@dataclass
class VerifyParams:
    name: str
    manifest_dir: str
    source_roots: Dict[str, str] = field(default_factory=dict)
    dest_roots: Dict[str, str] = field(default_factory=dict)
    detailed: bool = False
    log_dir: Optional[str] = None
    require_complete: bool = True

    def __post_init__(self):
        _validate_name(self.name)
        if not self.manifest_dir:
            raise ValueError("Manifest directory cannot be empty")

    @staticmethod
    def parse_root_mapping(items: List[str]) -> Dict[str, str]:
        """
        Converts CLI root specs into a {root_alias: canonical_prefix} mapping.
        "PREFIX" maps to "" (strip), "PREFIX=CANONICAL" rewrites.
        """
        mapping: Dict[str, str] = {}
        for item in items:
            if "=" in item:
                alias, canonical = item.split("=", 1)
            else:
                alias, canonical = item, ""
            alias = alias.strip()
            if not alias:
                raise ValueError(f"Empty root prefix in '{item}'")
            mapping[alias] = canonical.strip()
        return mapping


@dataclass
class DuplicatesParams:
    name: str
    manifest_dir: str
    side: Side = Side.DEST
    top: Optional[int] = None
    min_size_bytes: int = 0
    log_dir: Optional[str] = None

    def __post_init__(self):
        _validate_name(self.name)
        if not self.manifest_dir:
            raise ValueError("Manifest directory cannot be empty")
        if self.top is not None and self.top < 1:
            raise ValueError("--top must be at least 1")
        if self.min_size_bytes < 0:
            raise ValueError("Minimum size cannot be negative")
