"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/interfaces.py

Defines core interfaces (Protocols) used throughout the verification engine.

Key Components:
---------------
- HashAlgorithmImpl: Streaming hash function factory (SHA-256, xxHash64, ...).
- HashState: The incremental object returned by HashAlgorithmImpl.new().
- EntrySink: Anything the scheduler can commit finished digests to (ManifestStore).
- ProgressSource: A running pipeline as seen by the progress aggregator.
"""

from typing import Dict, Iterable, Optional, Protocol

from diskproof.core.models import HashAlgorithm, ManifestEntry


class HashState(Protocol):
    def update(self, data: bytes) -> None: ...
    def hexdigest(self) -> str: ...


class HashAlgorithmImpl(Protocol):
    """
    Interface for streaming hash algorithms.

    Allows plugging in different hashing functions without affecting the
    scheduler or the store. `name` must match the manifest header column.
    """
    algorithm: HashAlgorithm

    def new(self) -> HashState:
        """Returns a fresh incremental hash object."""
        ...


class EntrySink(Protocol):
    """Interface for the durable side of the scheduler."""
    def record(self, entry: ManifestEntry) -> None: ...
    def record_manifest(self, entry: ManifestEntry) -> None: ...
    def commit(self, entry: ManifestEntry) -> None: ...
    def resume_offset(self) -> int: ...
    def manifest_entries_for(self, paths: Iterable[str]) -> Dict[str, ManifestEntry]: ...


class ProgressSource(Protocol):
    """What the progress aggregator needs from a running pipeline (HashPipeline)."""
    total_files: Optional[int]
    total_bytes: Optional[int]

    @property
    def label(self) -> str: ...

    @property
    def paths(self): ...

    @property
    def activity(self): ...

    @property
    def ready(self) -> bool: ...

    @property
    def finished(self) -> bool: ...
