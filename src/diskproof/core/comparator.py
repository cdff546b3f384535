"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/comparator.py
Classifies two manifests into matched, missing, extra and corrupted.

ALGORITHM
---------
1. Preconditions: same digest algorithm, completion markers present
2. Normalize every path (container unwrap, root rewrite); drop platform noise
3. Deduplicate by normalized path, last entry wins
4. Corrupted: same normalized path on both sides, different digests.
   Those paths are removed from both sides before step 5
5. Digest sets: matched = S ∩ D, missing = S - D, extra = D - S

VERIFIED iff nothing is missing, extra or corrupted and both sides hold the
same number of unique paths.
"""

import logging
from typing import Dict, List, Optional, Tuple

from diskproof.core.exceptions import AlgorithmMismatchError, IncompleteManifestError
from diskproof.core.models import ComparisonItem, ComparisonResult, Manifest, ManifestEntry
from diskproof.core.normalizer import PathNormalizer, is_platform_noise

logger = logging.getLogger(__name__)


class ManifestComparator:
    """
    Compares a source manifest with a destination manifest.

    Attributes:
        source_normalizer: Root mapping applied to source paths
        dest_normalizer: Root mapping applied to destination paths
        require_complete: Refuse manifests without a completion marker
    """

    def __init__(
            self,
            source_normalizer: Optional[PathNormalizer] = None,
            dest_normalizer: Optional[PathNormalizer] = None,
            require_complete: bool = True,
    ):
        self.source_normalizer = source_normalizer or PathNormalizer()
        self.dest_normalizer = dest_normalizer or PathNormalizer()
        self.require_complete = require_complete

    def compare(self, source: Manifest, dest: Manifest, detailed: bool = False) -> ComparisonResult:
        """
        Raises:
            AlgorithmMismatchError: If the manifests use different algorithms
            IncompleteManifestError: If a manifest lacks its completion marker
        """
        self.check_preconditions(source, dest)

        src_by_path, src_containers = self._index(source, self.source_normalizer)
        dst_by_path, dst_containers = self._index(dest, self.dest_normalizer)

        corrupted: List[ComparisonItem] = []
        for path in sorted(src_by_path.keys() & dst_by_path.keys()):
            s, d = src_by_path[path], dst_by_path[path]
            if s.digest != d.digest:
                corrupted.append(ComparisonItem(path=path, size=s.size,
                                                source_digest=s.digest, dest_digest=d.digest))
        corrupted_paths = {item.path for item in corrupted}

        src_digests = {e.digest for p, e in src_by_path.items() if p not in corrupted_paths}
        dst_digests = {e.digest for p, e in dst_by_path.items() if p not in corrupted_paths}

        matched = frozenset(src_digests & dst_digests)
        missing = frozenset(src_digests - dst_digests)
        extra = frozenset(dst_digests - src_digests)

        missing_items: List[ComparisonItem] = []
        extra_items: List[ComparisonItem] = []
        if detailed:
            missing_items = self._items_for(src_by_path, missing, corrupted_paths, source_side=True)
            extra_items = self._items_for(dst_by_path, extra, corrupted_paths, source_side=False)

        result = ComparisonResult(
            algorithm=source.algorithm,
            source_total=len(src_by_path),
            dest_total=len(dst_by_path),
            matched_digests=matched,
            missing_digests=missing,
            extra_digests=extra,
            corrupted=corrupted,
            missing_items=missing_items,
            extra_items=extra_items,
            source_container_entries=src_containers,
            dest_container_entries=dst_containers,
            detailed=detailed,
        )
        logger.info(
            f"Compared {result.source_total} source / {result.dest_total} destination paths: "
            f"matched={result.matched_count} missing={result.missing_count} "
            f"extra={result.extra_count} corrupted={result.corrupted_count} -> {result.status.value}"
        )
        return result

    def check_preconditions(self, source: Manifest, dest: Manifest) -> None:
        if source.algorithm != dest.algorithm:
            raise AlgorithmMismatchError(
                f"Source manifest uses {source.algorithm.value}, "
                f"destination manifest uses {dest.algorithm.value}")
        if self.require_complete:
            for label, manifest in (("Source", source), ("Destination", dest)):
                if not manifest.complete:
                    raise IncompleteManifestError(
                        f"{label} manifest {manifest.path or ''} has no completion marker; "
                        f"finish hashing or pass --allow-incomplete")

    @staticmethod
    def _index(manifest: Manifest, normalizer: PathNormalizer) -> Tuple[Dict[str, ManifestEntry], int]:
        by_path: Dict[str, ManifestEntry] = {}
        containers = 0
        for entry in manifest.entries:
            if normalizer.is_container_entry(entry.path):
                containers += 1
            path = normalizer.normalize(entry.path)
            if not path or is_platform_noise(path):
                continue
            by_path[path] = entry
        return by_path, containers

    @staticmethod
    def _items_for(by_path: Dict[str, ManifestEntry], digests, excluded, source_side: bool) -> List[ComparisonItem]:
        items = []
        for path in sorted(by_path):
            entry = by_path[path]
            if path in excluded or entry.digest not in digests:
                continue
            if source_side:
                items.append(ComparisonItem(path=path, size=entry.size, source_digest=entry.digest))
            else:
                items.append(ComparisonItem(path=path, size=entry.size, dest_digest=entry.digest))
        return items
