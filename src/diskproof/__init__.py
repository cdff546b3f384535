"""
DiskProof: resumable, byte-for-byte verification of disk-to-disk migrations.

Core features:
- Crash-safe manifests: every file is hashed exactly once across any number of interrupted runs
- Parallel hashing sized by media type (SSD / spinning disk)
- hashdeep-compatible manifests (SHA-256 or xxHash64)
- Manifest comparison: matched, missing, extra and corrupted files
- Duplicate-content report over a manifest
- CLI interface for headless/server usage
"""

# Get version
try:
    from importlib.metadata import version as _version
    __version__ = _version("diskproof")
except Exception:
    __version__ = "0.0.0"

# Public API, only what users should import directly
from diskproof.commands import (
    HashCommand, HashRunResult, VerifyCommand, DuplicatesCommand, QuickCompareCommand, StatusCommand)
from diskproof.core import (
    HashParams, VerifyParams, DuplicatesParams, HashAlgorithm, Side, ManifestEntry,
    ComparisonResult, DuplicateReport, CancellationToken)
from diskproof.utils.convert_utils import ConvertUtils
from diskproof.services import ReportService

__all__ = [
    "HashCommand",
    "HashRunResult",
    "VerifyCommand",
    "DuplicatesCommand",
    "QuickCompareCommand",
    "StatusCommand",
    "HashParams",
    "VerifyParams",
    "DuplicatesParams",
    "HashAlgorithm",
    "Side",
    "ManifestEntry",
    "ComparisonResult",
    "DuplicateReport",
    "CancellationToken",
    "ConvertUtils",
    "ReportService",
    "__version__",
]
