"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/normalizer.py
Path normalization for manifest comparison, and the platform-noise deny-list.

Normalization rules, applied in order:
- Unwrap archive indirection: "container.zip:inner/path" -> "inner/path"
- Rewrite the longest configured root prefix: {"/Volumes/Old": ""} turns
  "/Volumes/Old/a/b.mov" into "a/b.mov"
- Strip leading separators so both sides share one relative form

Examples:
    "/Volumes/Old/clips/a.mov"              -> "clips/a.mov"
    "/Volumes/New/3/clips/a.mov"            -> "clips/a.mov"   (prefix "/Volumes/New/3")
    "/Volumes/New/3/odd.zip:clips/b:c.mov"  -> "clips/b:c.mov"
"""

import os
import re
from functools import lru_cache
from typing import Dict, Iterable, Mapping, Optional

# macOS metadata that never belongs to user content
NOISE_DIR_NAMES = frozenset({
    ".DocumentRevisions-V100",
    ".Spotlight-V100",
    ".TemporaryItems",
    ".Trashes",
    ".fseventsd",
})
NOISE_FILE_NAMES = frozenset({".DS_Store"})
NOISE_FILE_PREFIX = "._"

CONTAINER_SEPARATOR = ":"

_PATTERN_DRIVE_LETTER = re.compile(r'^[A-Za-z]:[\\/]')
_PATTERN_SEPARATORS = re.compile(r'[\\/]+')


def is_noise_name(name: str) -> bool:
    """True for file names on the deny-list (.DS_Store, AppleDouble "._*" files)."""
    return name in NOISE_FILE_NAMES or name.startswith(NOISE_FILE_PREFIX)


def is_noise_dir(name: str) -> bool:
    return name in NOISE_DIR_NAMES


@lru_cache(maxsize=65536)
def is_platform_noise(path: str) -> bool:
    """
    True if any component of the path is a deny-listed directory or the final
    component is a deny-listed file name. Works for absolute, relative and
    container-wrapped paths.
    """
    parts = [p for p in _PATTERN_SEPARATORS.split(path) if p]
    if not parts:
        return False
    if any(is_noise_dir(p) for p in parts[:-1]):
        return True
    return is_noise_name(parts[-1]) or is_noise_dir(parts[-1])


def split_container(path: str) -> Optional[str]:
    """
    Returns the inner path of a "container:innerPath" entry, or None for a plain path.
    Only the first colon separates container and inner path; a Windows drive
    prefix ("C:\\") is not a container.
    """
    if CONTAINER_SEPARATOR not in path or _PATTERN_DRIVE_LETTER.match(path):
        return None
    return path.split(CONTAINER_SEPARATOR, 1)[1]


class PathNormalizer:
    """
    Maps one tree's manifest paths to the shared comparison key.
    The root mapping is explicit ({root_alias: canonical_prefix}); nothing is inferred.
    """

    def __init__(self, root_mapping: Optional[Mapping[str, str]] = None):
        mapping: Dict[str, str] = {}
        for alias, canonical in (root_mapping or {}).items():
            alias = alias.rstrip("/\\") if alias not in ("/", "\\") else alias
            mapping[alias] = canonical.strip("/\\")
        # Longest alias first so nested roots win over their parents
        self._aliases = sorted(mapping.items(), key=lambda kv: len(kv[0]), reverse=True)

    @property
    def aliases(self) -> Dict[str, str]:
        return dict(self._aliases)

    def normalize(self, path: str) -> str:
        inner = split_container(path)
        if inner is not None:
            path = inner
        path = self._rewrite_prefix(path)
        return path.lstrip("/\\")

    def is_container_entry(self, path: str) -> bool:
        return split_container(path) is not None

    def _rewrite_prefix(self, path: str) -> str:
        for alias, canonical in self._aliases:
            if path == alias:
                return canonical
            if path.startswith(alias) and path[len(alias):len(alias) + 1] in ("/", "\\"):
                rest = path[len(alias) + 1:]
                return f"{canonical}/{rest}" if canonical else rest
        return path

    @classmethod
    def for_roots(cls, roots: Iterable[str]) -> "PathNormalizer":
        """Convenience constructor: strip each root completely."""
        return cls({os.path.normpath(r): "" for r in roots})

    def __repr__(self):
        return f"<PathNormalizer aliases={self.aliases}>"
