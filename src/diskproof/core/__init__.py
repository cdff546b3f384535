"""
Core verification engine: enumerator, hasher, store, scheduler, comparator and duplicate detector.

This package contains the crash-safe foundation of diskproof:
- TreeEnumerator: stable, deny-listed traversal of a tree
- DigestProvider + Sha256AlgorithmImpl / XXHashAlgorithmImpl: streaming content digests
- ManifestStore: manifest-first appends to the manifest, state log and byte ledger
- HashScheduler / HashPipeline: bounded parallel hashing with ordered commit and resume
- ProgressAggregator: live progress from the durable logs
- ManifestComparator / DuplicateDetector / QuickComparator: read-only analysis

No CLI dependencies: suitable for scripting and embedding.
"""

from .exceptions import (
    DiskProofError, EnumerationError, DigestError, AlgorithmMismatchError,
    LockUnavailableError, CancelledError, ManifestFormatError, IncompleteManifestError)
from .models import (
    HashAlgorithm, MediaType, Side, PipelineStatus, VerificationStatus, ExitCode, EngineConfig,
    ManifestEntry, ManifestHeader, Manifest, ScheduleResult, PipelineResult, ProgressSnapshot,
    SideStatus, ComparisonItem, ComparisonResult, DuplicateSet, DuplicateReport, QuickCompareResult,
    HashParams, VerifyParams, DuplicatesParams)
from .normalizer import PathNormalizer, is_platform_noise
from .scanner import TreeEnumerator, Enumeration
from .hasher import DigestProvider, Sha256AlgorithmImpl, XXHashAlgorithmImpl, algorithm_for
from .store import ManifestPaths, ManifestStore, LogTail, read_manifest
from .media import classify_media, recommended_workers
from .cancellation import CancellationToken, SentinelWatcher
from .scheduler import ActivityBoard, HashScheduler
from .pipeline import HashPipeline
from .progress import ProgressAggregator, LiveMatchCounter
from .comparator import ManifestComparator
from .grouper import DuplicateDetector
from .quick_compare import QuickComparator

__all__ = [
    "DiskProofError",
    "EnumerationError",
    "DigestError",
    "AlgorithmMismatchError",
    "LockUnavailableError",
    "CancelledError",
    "ManifestFormatError",
    "IncompleteManifestError",
    "HashAlgorithm",
    "MediaType",
    "Side",
    "PipelineStatus",
    "VerificationStatus",
    "ExitCode",
    "EngineConfig",
    "ManifestEntry",
    "ManifestHeader",
    "Manifest",
    "ScheduleResult",
    "PipelineResult",
    "ProgressSnapshot",
    "SideStatus",
    "ComparisonItem",
    "ComparisonResult",
    "DuplicateSet",
    "DuplicateReport",
    "QuickCompareResult",
    "HashParams",
    "VerifyParams",
    "DuplicatesParams",
    "PathNormalizer",
    "is_platform_noise",
    "TreeEnumerator",
    "Enumeration",
    "DigestProvider",
    "Sha256AlgorithmImpl",
    "XXHashAlgorithmImpl",
    "algorithm_for",
    "ManifestPaths",
    "ManifestStore",
    "LogTail",
    "read_manifest",
    "classify_media",
    "recommended_workers",
    "CancellationToken",
    "SentinelWatcher",
    "ActivityBoard",
    "HashScheduler",
    "HashPipeline",
    "ProgressAggregator",
    "LiveMatchCounter",
    "ManifestComparator",
    "DuplicateDetector",
    "QuickComparator",
]
