"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/hasher.py
Streaming content digests for manifest entries.

The DigestProvider reads each file in fixed-size chunks so memory stays flat
for multi-gigabyte media files. Any algorithm implementing HashAlgorithmImpl
can be plugged in; SHA-256 and xxHash64 ship by default.
"""

import hashlib
import logging
from typing import Callable, Optional, Tuple

import xxhash

from diskproof.core.exceptions import DigestError
from diskproof.core.interfaces import HashAlgorithmImpl, HashState
from diskproof.core.models import EngineConfig, HashAlgorithm, ManifestEntry

logger = logging.getLogger(__name__)


# Use the same way to implement and use any other hashing algorithm
class Sha256AlgorithmImpl:
    algorithm = HashAlgorithm.SHA256

    @staticmethod
    def new() -> HashState:
        return hashlib.sha256()


class XXHashAlgorithmImpl:
    algorithm = HashAlgorithm.XXH64

    @staticmethod
    def new() -> HashState:
        return xxhash.xxh64()


_IMPLEMENTATIONS = {
    HashAlgorithm.SHA256: Sha256AlgorithmImpl,
    HashAlgorithm.XXH64: XXHashAlgorithmImpl,
}


def algorithm_for(algorithm: HashAlgorithm) -> HashAlgorithmImpl:
    """Factory: HashAlgorithm enum value -> implementation instance."""
    try:
        return _IMPLEMENTATIONS[algorithm]()
    except KeyError:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")


class DigestProvider:
    """
    Computes the digest of a whole file.
    The recorded size is the number of bytes actually read, so a file that
    grows or shrinks while being hashed is recorded consistently with its digest.
    """

    def __init__(self, algorithm: HashAlgorithmImpl, chunk_size: int = EngineConfig.READ_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    @property
    def name(self) -> str:
        return self.algorithm.algorithm.value

    def compute(
            self,
            path: str,
            stopped_flag: Optional[Callable[[], bool]] = None
    ) -> Optional[ManifestEntry]:
        """
        Hashes one file.
        Returns None if the stop signal is observed mid-file.
        Raises DigestError if the file cannot be opened or read.
        """
        hasher = self.algorithm.new()
        size = 0
        try:
            with open(path, 'rb') as f:
                while True:
                    if stopped_flag and stopped_flag():
                        return None
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    size += len(chunk)
        except OSError as e:
            raise DigestError(path, e.strerror or str(e)) from e
        return ManifestEntry(size=size, digest=hasher.hexdigest(), path=path)

    def digest(
            self,
            path: str,
            stopped_flag: Optional[Callable[[], bool]] = None
    ) -> Tuple[Optional[ManifestEntry], Optional[DigestError]]:
        """Same as compute(), but returns the error instead of raising it."""
        try:
            return self.compute(path, stopped_flag), None
        except DigestError as e:
            logger.warning(str(e))
            return None, e
