"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/scanner.py
Enumerates the regular files of a tree in a stable, reproducible order.
Features:
- Uses os.walk for fast traversal, symbolic links are never followed
- Skips platform metadata (.Spotlight-V100, .Trashes, .DS_Store, "._*", ...)
- Sorts by (parent directory, file name) so siblings are read together
- The order is identical across runs of an unchanged tree; the resume offset
  stored in a state log indexes into it
"""

import os
import stat
import time
import logging
from itertools import islice
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from diskproof.core.exceptions import EnumerationError
from diskproof.core.normalizer import is_noise_dir, is_noise_name

logger = logging.getLogger(__name__)


def sort_key(path: str) -> Tuple[str, str]:
    """Parent directory first, then file name."""
    parent, name = os.path.split(path)
    return parent, name


class Enumeration(Sequence):
    """
    Result of enumerating a tree: a finite, re-iterable, sorted sequence of paths.

    Attributes:
        root: Root directory that was enumerated
        paths: Sorted regular-file paths
        sizes: Sizes aligned with paths (None when not measured)
        errors: Subtrees or files that could not be read
        unrepresentable: Paths skipped because a line-based log cannot hold them
    """

    def __init__(
        self,
        root: str,
        paths: List[str],
        sizes: Optional[List[int]] = None,
        errors: Optional[List[str]] = None,
        unrepresentable: Optional[List[str]] = None,
        measured: bool = True,
    ):
        self.root = root
        self.paths = paths
        self.sizes = sizes
        self.errors = errors or []
        self.unrepresentable = unrepresentable or []
        self._measured = measured and sizes is not None

    def __getitem__(self, index):
        return self.paths[index]

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    @property
    def total_files(self) -> int:
        return len(self.paths)

    @property
    def total_bytes(self) -> Optional[int]:
        """Sum of file sizes, or None if sizes were not measured."""
        if not self._measured:
            return None
        return sum(self.sizes)

    def size_of(self, index: int) -> Optional[int]:
        if not self._measured:
            return None
        return self.sizes[index]

    def suffix(self, offset: int) -> Iterator[Tuple[int, str]]:
        """Lazily yields (index, path) for every path at or after offset."""
        offset = max(0, offset)
        return islice(enumerate(self.paths), offset, None)

    def __repr__(self):
        return f"<Enumeration root={self.root}, files={len(self.paths)}>"


class TreeEnumerator:
    """
    Walks a directory tree and returns an Enumeration.

    Attributes:
        root_dir: Root directory to enumerate
        excluded_dirs: Extra directories to skip (absolute or relative to root)
        measure_sizes: Stat every file so total bytes are known for progress
    """

    def __init__(
        self,
        root_dir: str,
        excluded_dirs: Optional[List[str]] = None,
        measure_sizes: bool = True,
    ):
        self.root_dir = root_dir
        self.measure_sizes = measure_sizes
        self.excluded_dirs = [
            os.path.normpath(d if os.path.isabs(d) else os.path.join(root_dir, d))
            for d in (excluded_dirs or [])
        ]

    def enumerate(self) -> Enumeration:
        """
        Walks the tree once, then sorts.
        Raises EnumerationError if the root itself cannot be read; unreadable
        subtrees are logged and skipped.
        """
        root_path = Path(self.root_dir)
        self._validate_root(root_path)

        logger.debug(f"Enumerating: {self.root_dir}")
        start_time = time.time()

        errors: List[str] = []
        unrepresentable: List[str] = []
        found: List[Tuple[str, Optional[int]]] = []
        size_known = self.measure_sizes

        def on_error(err: OSError) -> None:
            # os.walk reports the root through the same hook
            if err.filename and os.path.normpath(err.filename) == os.path.normpath(self.root_dir):
                raise EnumerationError(f"Cannot read root directory {self.root_dir}: {err}") from err
            logger.warning(f"Skipping unreadable directory {err.filename}: {err.strerror}")
            errors.append(str(err.filename))

        for root, dirs, files in os.walk(str(root_path), onerror=on_error, followlinks=False):
            dirs[:] = [d for d in dirs if self._keep_dir(root, d)]

            for filename in files:
                if is_noise_name(filename):
                    continue
                path = os.path.join(root, filename)
                if "\n" in path or "\r" in path:
                    logger.warning(f"Skipping file with a line break in its name: {path!r}")
                    unrepresentable.append(path)
                    continue

                entry = self._regular_file_size(path)
                if entry is False:
                    continue
                if entry is None:
                    errors.append(path)
                    size_known = False
                found.append((path, entry if isinstance(entry, int) else None))

        found.sort(key=lambda item: sort_key(item[0]))
        paths = [p for p, _ in found]
        sizes = [s if s is not None else 0 for _, s in found] if self.measure_sizes else None

        logger.debug(f"Enumeration of {self.root_dir} took {time.time() - start_time:.2f}s, "
                     f"{len(paths)} files")
        return Enumeration(
            root=self.root_dir,
            paths=paths,
            sizes=sizes,
            errors=errors,
            unrepresentable=unrepresentable,
            measured=size_known,
        )

    def _validate_root(self, root_path: Path) -> None:
        if not root_path.exists():
            raise EnumerationError(f"Directory does not exist: {self.root_dir}")
        if not root_path.is_dir():
            raise EnumerationError(f"Not a directory: {self.root_dir}")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise EnumerationError(f"Directory is not readable: {self.root_dir}")

    def _keep_dir(self, parent: str, name: str) -> bool:
        if is_noise_dir(name):
            logger.debug(f"Skipping platform metadata directory: {os.path.join(parent, name)}")
            return False
        if self.excluded_dirs:
            full = os.path.normpath(os.path.join(parent, name))
            for excluded in self.excluded_dirs:
                if full == excluded or full.startswith(excluded + os.sep):
                    logger.debug(f"Skipping excluded directory: {full}")
                    return False
        return True

    def _regular_file_size(self, path: str):
        """
        Returns the size of a regular file, False for anything to skip (symlink,
        device, fifo) and None when the file is regular but could not be stat'ed.
        """
        try:
            st = os.lstat(path)
        except OSError as e:
            logger.warning(f"Cannot stat {path}: {e}")
            return None
        if not stat.S_ISREG(st.st_mode):
            return False
        return st.st_size if self.measure_sizes else 0
