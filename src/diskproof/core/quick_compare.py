"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/quick_compare.py
Size-only comparison of two trees, without reading any content.
Catches missing files and truncated copies in minutes; it proves nothing about bytes.
"""

import os
import logging
from typing import Callable, Dict, List, Optional

from diskproof.core.models import QuickCompareResult
from diskproof.core.scanner import TreeEnumerator

logger = logging.getLogger(__name__)


class QuickComparator:
    """Maps every source file onto the destination tree by relative path and compares sizes."""

    def __init__(self, source_root: str, dest_root: str, excluded_dirs: Optional[List[str]] = None):
        self.source_root = source_root
        self.dest_root = dest_root
        self.excluded_dirs = excluded_dirs or []

    def compare(
            self,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[Callable[[str, int, Optional[int]], None]] = None,
    ) -> QuickCompareResult:
        """Raises EnumerationError if either root is unreadable."""
        source = TreeEnumerator(self.source_root, excluded_dirs=self.excluded_dirs).enumerate()
        dest = TreeEnumerator(self.dest_root).enumerate()
        dest_sizes = self._relative_sizes(self.dest_root, dest.paths, dest.sizes)

        result = QuickCompareResult(source_count=source.total_files, dest_count=dest.total_files)
        total = source.total_files
        for index, path in enumerate(source.paths):
            if stopped_flag and stopped_flag():
                result.cancelled = True
                break

            rel = os.path.relpath(path, self.source_root)
            src_size = source.size_of(index)
            dst_size = dest_sizes.get(rel)
            if dst_size is None:
                result.missing.append(rel)
            elif src_size != dst_size:
                result.size_mismatches.append((rel, src_size, dst_size))
            else:
                result.matches += 1

            if progress_callback and (index + 1) % 1000 == 0:
                progress_callback("quick-compare", index + 1, total)

        if progress_callback:
            progress_callback("quick-compare", result.matches + len(result.missing)
                              + len(result.size_mismatches), total)
        logger.info(f"Quick compare: {result.matches} match, {len(result.missing)} missing, "
                    f"{len(result.size_mismatches)} size mismatch(es)")
        return result

    @staticmethod
    def _relative_sizes(root: str, paths: List[str], sizes: Optional[List[int]]) -> Dict[str, int]:
        sizes = sizes or [0] * len(paths)
        return {os.path.relpath(p, root): s for p, s in zip(paths, sizes)}
