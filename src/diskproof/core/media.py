"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/media.py
Classifies the medium under a path as SSD, HDD or UNKNOWN to size the hashing pool.

Detection:
- psutil.disk_partitions() maps the path to the device of its longest mount point
- Linux: /sys/class/block/<dev>/queue/rotational (partitions fall back to the parent disk)
- macOS: "Solid State: Yes/No" from `diskutil info <device>`
Anything else (network shares, FUSE, containers without /sys) is UNKNOWN.
"""

import os
import sys
import logging
import subprocess
from typing import Optional

import psutil

from diskproof.core.models import EngineConfig, MediaType

logger = logging.getLogger(__name__)

SYS_CLASS_BLOCK = "/sys/class/block"


def find_device(path: str) -> Optional[str]:
    """Device of the mounted filesystem that contains path (longest mount point wins)."""
    target = os.path.realpath(path)
    best_mount = ""
    best_device = None
    try:
        partitions = psutil.disk_partitions(all=False)
    except (OSError, RuntimeError) as e:
        logger.debug(f"Cannot list partitions: {e}")
        return None

    for part in partitions:
        mount = part.mountpoint
        if not mount:
            continue
        if target == mount or target.startswith(mount.rstrip(os.sep) + os.sep):
            if len(mount) > len(best_mount):
                best_mount = mount
                best_device = part.device
    return best_device


def _linux_rotational(device: str) -> Optional[bool]:
    name = os.path.basename(os.path.realpath(device))
    sys_dev = os.path.realpath(os.path.join(SYS_CLASS_BLOCK, name))
    # A partition has no queue/ of its own; its parent directory is the disk
    for candidate in (sys_dev, os.path.dirname(sys_dev)):
        flag_path = os.path.join(candidate, "queue", "rotational")
        try:
            with open(flag_path) as f:
                return f.read().strip() == "1"
        except OSError:
            continue
    return None


def _macos_rotational(device: str) -> Optional[bool]:
    try:
        proc = subprocess.run(
            ["diskutil", "info", device],
            capture_output=True, text=True, timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug(f"diskutil unavailable for {device}: {e}")
        return None
    for line in proc.stdout.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "Solid State":
            return value.strip().lower() != "yes"
    return None


def classify_media(path: str) -> MediaType:
    """Best-effort media classification; never raises."""
    device = find_device(path)
    if not device:
        logger.debug(f"No block device found for {path}")
        return MediaType.UNKNOWN

    if sys.platform.startswith("linux"):
        rotational = _linux_rotational(device)
    elif sys.platform == "darwin":
        rotational = _macos_rotational(device)
    else:
        rotational = None

    if rotational is None:
        media = MediaType.UNKNOWN
    else:
        media = MediaType.HDD if rotational else MediaType.SSD
    logger.info(f"{path} is on {device}: {media.display_name}")
    return media


def recommended_workers(media: MediaType, override: Optional[int] = None) -> int:
    """Hashing pool size for a medium; an explicit operator override always wins."""
    if override is not None:
        if override < 1:
            raise ValueError("Worker count must be at least 1")
        return override
    return EngineConfig.get_worker_count(media)
