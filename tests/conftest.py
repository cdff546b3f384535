"""
Shared fixtures for verification engine tests.
Creates isolated temporary directories with controlled trees and manifests.
"""
import pytest
import tempfile
from pathlib import Path
from typing import Dict, List, Tuple

from diskproof.core.models import HashAlgorithm, Manifest, ManifestEntry, ManifestHeader


@pytest.fixture
def temp_dir():
    """Creates isolated temporary directory, auto-cleanup after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def source_tree(temp_dir) -> Dict[str, Path]:
    """
    Creates a small source tree:
    - 2 identical files in different directories (duplicate content)
    - 2 unique files, one of them nested
    - 1 empty file (must still be hashed)
    - macOS metadata that must never be enumerated
    """
    root = temp_dir / "source"
    root.mkdir()
    files = {}

    files["a"] = root / "a.txt"
    files["a"].write_bytes(b"A" * 1024)
    (root / "photos").mkdir()
    files["a_copy"] = root / "photos" / "a_copy.txt"
    files["a_copy"].write_bytes(b"A" * 1024)

    files["b"] = root / "b.bin"
    files["b"].write_bytes(b"B" * 3000)
    (root / "photos" / "2015").mkdir()
    files["c"] = root / "photos" / "2015" / "c.mov"
    files["c"].write_bytes(bytes(range(256)) * 20)

    files["empty"] = root / "empty.txt"
    files["empty"].write_bytes(b"")

    # Platform noise
    (root / ".DS_Store").write_bytes(b"noise")
    (root / "photos" / "._a_copy.txt").write_bytes(b"appledouble")
    (root / ".Spotlight-V100").mkdir()
    (root / ".Spotlight-V100" / "store.db").write_bytes(b"index")

    files["root"] = root
    return files


def copy_tree(src: Path, dst: Path) -> None:
    """Byte copy of every regular file, platform noise included."""
    for path in src.rglob("*"):
        target = dst / path.relative_to(src)
        if path.is_dir():
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(path.read_bytes())


@pytest.fixture
def dest_tree(temp_dir, source_tree) -> Path:
    """An exact copy of source_tree."""
    root = temp_dir / "dest"
    root.mkdir()
    copy_tree(source_tree["root"], root)
    return root


def make_manifest(
        entries: List[Tuple[int, str, str]],
        algorithm: HashAlgorithm = HashAlgorithm.SHA256,
        complete: bool = True,
        path: str = None,
) -> Manifest:
    """Builds an in-memory manifest from (size, digest, path) tuples."""
    return Manifest(
        header=ManifestHeader(algorithm=algorithm),
        entries=[ManifestEntry(size=s, digest=d, path=p) for s, d, p in entries],
        path=path,
        complete=complete,
    )
