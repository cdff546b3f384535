"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/pipeline.py
One hashing pipeline: enumerate a tree, resume from its state log, hash the rest.

STAGES
------
1. Enumerate      : TreeEnumerator, stable (parent, name) order
2. Open store     : create the header or adopt the existing algorithm
3. Resume         : offset = state rows; sanity-check it against the enumeration
4. Size the pool  : classify the medium unless the operator chose a worker count
5. Schedule       : HashScheduler over the pending suffix
6. Finish         : write the completion marker once every file is committed

Pipeline-level failures are captured in the PipelineResult instead of raised,
so a failing source never takes the destination pipeline down with it.
"""

import time
import logging
import threading
from typing import Callable, List, Optional

from diskproof.core.exceptions import CancelledError, DiskProofError
from diskproof.core.hasher import DigestProvider, algorithm_for
from diskproof.core.media import classify_media, recommended_workers
from diskproof.core.models import (
    EngineConfig, HashAlgorithm, MediaType, PipelineResult, PipelineStatus, Side)
from diskproof.core.scanner import Enumeration, TreeEnumerator
from diskproof.core.scheduler import ActivityBoard, HashScheduler
from diskproof.core.store import ManifestPaths, ManifestStore

logger = logging.getLogger(__name__)


class HashPipeline:
    """
    Hashes one tree into one manifest.

    Attributes exposed for live progress (read-only from other threads):
        label, paths, activity, total_files, total_bytes, ready, running
    """

    def __init__(
            self,
            side: Side,
            root: str,
            paths: ManifestPaths,
            algorithm: Optional[HashAlgorithm] = None,
            workers: Optional[int] = None,
            excluded_dirs: Optional[List[str]] = None,
            measure_sizes: bool = True,
            total_bytes_hint: Optional[int] = None,
            lock_timeout: float = EngineConfig.LOCK_TIMEOUT,
            command: str = "",
    ):
        self.side = side
        self.root = root
        self.paths = paths
        self.algorithm = algorithm
        self.workers = workers
        self.excluded_dirs = excluded_dirs or []
        self.measure_sizes = measure_sizes
        self.total_bytes_hint = total_bytes_hint
        self.lock_timeout = lock_timeout
        self.command = command

        self.activity = ActivityBoard()
        self.total_files: Optional[int] = None
        self.total_bytes: Optional[int] = total_bytes_hint
        self._running = threading.Event()
        self._ready = threading.Event()
        self._finished = threading.Event()

    @property
    def label(self) -> str:
        return self.side.label

    @property
    def running(self) -> bool:
        return self._running.is_set() and not self._finished.is_set()

    @property
    def ready(self) -> bool:
        """Set once the store is open and its logs are repaired."""
        return self._ready.is_set()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def run(
            self,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[Callable[[str, int, Optional[int]], None]] = None,
    ) -> PipelineResult:
        """Never raises DiskProofError: failures come back as PipelineStatus.FAILED."""
        self._running.set()
        start_time = time.time()
        result = PipelineResult(side=self.side, root=self.root,
                                status=PipelineStatus.FAILED, manifest_path=self.paths.manifest)
        try:
            self._execute(result, stopped_flag, progress_callback)
        except CancelledError as e:
            logger.info(f"[{self.label}] {e}")
            result.status = PipelineStatus.CANCELLED
        except DiskProofError as e:
            logger.error(f"[{self.label}] {e}")
            result.status = PipelineStatus.FAILED
            result.error = str(e)
        except OSError as e:
            logger.error(f"[{self.label}] I/O failure on {self.paths.manifest}: {e}")
            result.status = PipelineStatus.FAILED
            result.error = f"I/O failure: {e}"
        finally:
            result.elapsed = time.time() - start_time
            self._finished.set()
        return result

    def _execute(self, result: PipelineResult, stopped_flag, progress_callback) -> None:
        logger.info(f"[{self.label}] Enumerating {self.root}")
        enumeration = TreeEnumerator(
            self.root, excluded_dirs=self.excluded_dirs, measure_sizes=self.measure_sizes
        ).enumerate()
        self.total_files = enumeration.total_files
        if enumeration.total_bytes is not None:
            self.total_bytes = enumeration.total_bytes
        result.total_files = enumeration.total_files
        result.enumeration_errors = len(enumeration.errors)
        logger.info(f"[{self.label}] {enumeration.total_files} files to verify")

        store = ManifestStore.open(
            self.paths,
            algorithm=self.algorithm,
            invoked_from=self.root,
            command=self.command,
            lock_timeout=self.lock_timeout,
        )
        self._ready.set()
        with store:
            offset = self._resume_offset(store, enumeration)
            result.resume_offset = offset

            if offset < enumeration.total_files and store.is_complete():
                store.clear_complete()

            # A stop request may arrive during a long enumeration
            if offset < enumeration.total_files and stopped_flag and stopped_flag():
                raise CancelledError(f"Stopped after enumeration, resume offset {offset}")

            if self.workers is not None:
                workers = recommended_workers(MediaType.UNKNOWN, override=self.workers)
            else:
                result.media = classify_media(self.root)
                workers = recommended_workers(result.media)
            result.workers = workers
            logger.info(f"[{self.label}] Resuming at {offset}/{enumeration.total_files} "
                        f"with {workers} worker(s), {store.algorithm.value}")

            provider = DigestProvider(algorithm_for(store.algorithm))
            scheduler = HashScheduler(store, provider, workers, activity=self.activity, name=self.label)
            schedule = scheduler.run(enumeration, offset,
                                     stopped_flag=stopped_flag, progress_callback=progress_callback)
            result.schedule = schedule

            committed = store.resume_offset()
            if schedule.cancelled:
                result.status = PipelineStatus.CANCELLED
            elif committed >= enumeration.total_files and schedule.skipped == 0:
                store.mark_complete(enumeration.total_files, store.bytes_done())
                if enumeration.errors or enumeration.unrepresentable:
                    logger.warning(f"[{self.label}] {len(enumeration.errors)} unreadable and "
                                   f"{len(enumeration.unrepresentable)} unrepresentable path(s) "
                                   f"are not in the manifest")
                    result.status = PipelineStatus.INCOMPLETE
                else:
                    result.status = PipelineStatus.COMPLETE
            else:
                result.status = PipelineStatus.INCOMPLETE

    def _resume_offset(self, store: ManifestStore, enumeration: Enumeration) -> int:
        offset = store.resume_offset()
        total = enumeration.total_files
        if offset > total:
            logger.warning(f"[{self.label}] State log has {offset} rows but the tree now holds "
                           f"{total} files; the tree changed since the last run")
            return total
        if offset > 0:
            last = store.last_state_path()
            expected = enumeration[offset - 1]
            if last != expected:
                logger.warning(f"[{self.label}] Resume point mismatch: state log ends with "
                               f"{last!r}, enumeration has {expected!r}; the tree changed "
                               f"since the last run")
        return offset
