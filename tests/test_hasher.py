"""
Unit tests for DigestProvider with SHA-256 and xxHash64.
Verifies streamed digests equal one-shot digests and errors are reported, not raised.
"""
import hashlib

import pytest
import xxhash

from diskproof.core.exceptions import DigestError
from diskproof.core.hasher import (
    DigestProvider, Sha256AlgorithmImpl, XXHashAlgorithmImpl, algorithm_for)
from diskproof.core.models import HashAlgorithm


class TestDigestProvider:
    """Test chunked hashing."""

    def test_sha256_matches_hashlib(self, temp_dir):
        content = b"test content " * 100000  # spans several chunks
        path = temp_dir / "big.bin"
        path.write_bytes(content)

        provider = DigestProvider(Sha256AlgorithmImpl(), chunk_size=64 * 1024)
        entry = provider.compute(str(path))

        assert entry.digest == hashlib.sha256(content).hexdigest()
        assert entry.size == len(content)
        assert entry.path == str(path)

    def test_xxh64_matches_xxhash(self, temp_dir):
        content = b"xx" * 5000
        path = temp_dir / "file.bin"
        path.write_bytes(content)

        entry = DigestProvider(XXHashAlgorithmImpl(), chunk_size=1000).compute(str(path))

        assert entry.digest == xxhash.xxh64(content).hexdigest()
        assert len(entry.digest) == HashAlgorithm.XXH64.hex_length

    def test_empty_file_is_hashable(self, temp_dir):
        path = temp_dir / "empty"
        path.write_bytes(b"")

        entry = DigestProvider(Sha256AlgorithmImpl()).compute(str(path))

        assert entry.size == 0
        assert entry.digest == hashlib.sha256(b"").hexdigest()

    def test_missing_file_raises_digest_error(self, temp_dir):
        provider = DigestProvider(Sha256AlgorithmImpl())
        with pytest.raises(DigestError) as exc_info:
            provider.compute(str(temp_dir / "vanished.bin"))
        assert exc_info.value.path == str(temp_dir / "vanished.bin")

    def test_digest_returns_error_instead_of_raising(self, temp_dir):
        entry, error = DigestProvider(Sha256AlgorithmImpl()).digest(str(temp_dir / "vanished.bin"))
        assert entry is None
        assert isinstance(error, DigestError)

    def test_stop_signal_returns_no_digest(self, temp_dir):
        path = temp_dir / "file.bin"
        path.write_bytes(b"x" * 10)

        entry, error = DigestProvider(Sha256AlgorithmImpl()).digest(str(path), stopped_flag=lambda: True)

        assert entry is None
        assert error is None

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            DigestProvider(Sha256AlgorithmImpl(), chunk_size=0)


class TestAlgorithmFactory:
    def test_algorithm_for_returns_matching_impl(self):
        assert algorithm_for(HashAlgorithm.SHA256).algorithm == HashAlgorithm.SHA256
        assert algorithm_for(HashAlgorithm.XXH64).algorithm == HashAlgorithm.XXH64

    def test_provider_name_is_header_column(self):
        assert DigestProvider(algorithm_for(HashAlgorithm.XXH64)).name == "xxh64"
