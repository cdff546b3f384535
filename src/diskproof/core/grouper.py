"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/grouper.py
Finds duplicate content inside a single manifest.
Read-only: it reports wasted space, it never touches the files.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

from diskproof.core.models import DuplicateReport, DuplicateSet, Manifest, ManifestEntry
from diskproof.core.normalizer import is_platform_noise

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """Groups a manifest's entries (deduplicated by path) by digest."""

    def find(self, manifest: Manifest, min_size: int = 0) -> DuplicateReport:
        """Sets whose per-copy size is below min_size are left out (0 keeps empty files too)."""
        entries = [e for e in manifest.by_path().values() if not is_platform_noise(e.path)]
        groups = self._group_by([e for e in entries if e.size >= min_size], lambda e: e.digest)

        sets = []
        for digest, group in groups.items():
            paths = sorted(e.path for e in group)
            # Identical content implies identical size; take the largest in case of a torn entry
            size = max(e.size for e in group)
            sets.append(DuplicateSet(digest=digest, size=size, paths=paths))

        sets.sort(key=lambda s: (-s.wasted_bytes, s.digest))
        report = DuplicateReport(sets=sets, total_entries=len(entries))
        logger.info(f"{len(sets)} duplicate set(s) in {len(entries)} entries of {manifest.path}")
        return report

    @staticmethod
    def _group_by(entries: List[ManifestEntry], key_func: Callable[[ManifestEntry], Any]) -> Dict[Any, List[ManifestEntry]]:
        """Groups by any computed key, keeping only groups with at least two entries."""
        groups = defaultdict(list)
        for entry in entries:
            groups[key_func(entry)].append(entry)
        return {key: group for key, group in groups.items() if len(group) >= 2}
