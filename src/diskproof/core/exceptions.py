"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/exceptions.py
Error taxonomy of the verification engine.

Per-file errors (DigestError) are accounted and never escalate.
Pipeline-level errors (EnumerationError, LockUnavailableError) stop only the pipeline
that raised them. Comparison errors abort before any partial result is produced.
"""


class DiskProofError(Exception):
    """Base exception for all engine errors."""


class EnumerationError(DiskProofError):
    """Root directory of a tree is missing or unreadable."""


class DigestError(DiskProofError):
    """A single file could not be hashed (unreadable, vanished)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot hash {path}: {reason}")
        self.path = path
        self.reason = reason


class AlgorithmMismatchError(DiskProofError):
    """Two manifests (or a manifest and a request) disagree on the digest algorithm."""


class LockUnavailableError(DiskProofError):
    """The advisory manifest lock could not be acquired in time."""


class CancelledError(DiskProofError):
    """The external stop signal was observed."""


class ManifestFormatError(DiskProofError):
    """Manifest header is missing or cannot be parsed."""


class IncompleteManifestError(DiskProofError):
    """Comparison refused because a manifest has no completion marker."""
