"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/scheduler.py
Parallel hashing of the unprocessed suffix of an enumeration.

CONCURRENCY
-----------
- A ThreadPoolExecutor of N workers only reads files and computes digests
- The scheduler thread is the single writer of the manifest, state log and ledger
- At most N tasks are in flight, so memory is bounded regardless of tree size

ORDERED COMMIT
--------------
Workers finish out of order, but the state log is a resume offset, not a
membership set. Every finished digest goes to the manifest immediately; the
state log and ledger only advance over the contiguous prefix of finished files.
A file that fails or is cancelled stalls the prefix: files after it stay
manifest-only until a later run recovers them.

TAIL RECOVERY
-------------
Before dispatching, paths of the pending suffix that already have a manifest
entry (crash between the two appends, or a stalled prefix) are committed from
that entry without reading the file again.
"""

import time
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Tuple

from diskproof.core.exceptions import DigestError
from diskproof.core.hasher import DigestProvider
from diskproof.core.interfaces import EntrySink
from diskproof.core.models import ManifestEntry, ScheduleResult
from diskproof.core.scanner import Enumeration

logger = logging.getLogger(__name__)

TaskResult = Tuple[Optional[ManifestEntry], Optional[DigestError]]


class ActivityBoard:
    """
    Best-effort "currently hashing" markers, one per worker thread.
    Advisory only: read by the progress display, never by the engine.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._current: Dict[str, Tuple[int, str]] = {}

    def begin(self, path: str, size: Optional[int] = None) -> None:
        with self._lock:
            self._current[threading.current_thread().name] = (size or 0, path)

    def end(self) -> None:
        with self._lock:
            self._current.pop(threading.current_thread().name, None)

    def snapshot(self) -> List[Tuple[int, str]]:
        """Current (size, path) pairs, largest first."""
        with self._lock:
            items = list(self._current.values())
        return sorted(items, key=lambda item: item[0], reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._current.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._current)


class HashScheduler:
    """
    Hashes files with a bounded worker pool and commits them through an EntrySink.

    Usage:
        scheduler = HashScheduler(store, DigestProvider(algorithm_for(store.algorithm)), workers=8)
        result = scheduler.run(enumeration, store.resume_offset(), stopped_flag=token)
    """

    def __init__(
            self,
            store: EntrySink,
            provider: DigestProvider,
            workers: int,
            activity: Optional[ActivityBoard] = None,
            name: str = "hash",
    ):
        if workers < 1:
            raise ValueError("Worker count must be at least 1")
        self.store = store
        self.provider = provider
        self.workers = workers
        self.activity = activity or ActivityBoard()
        self.name = name

        self._abort = threading.Event()
        self._pending_commit: Dict[int, ManifestEntry] = {}
        self._next_index = 0
        self._result = ScheduleResult()

    def run(
            self,
            enumeration: Enumeration,
            offset: int,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[Callable[[str, int, Optional[int]], None]] = None,
    ) -> ScheduleResult:
        """
        Processes enumeration[offset:].

        Raises:
            LockUnavailableError / OSError: store failures are fatal for the run;
                in-flight workers are told to stop before the error propagates
        """
        total = enumeration.total_files
        offset = max(0, min(offset, total))
        self._abort.clear()
        self._pending_commit = {}
        self._next_index = offset
        self._result = ScheduleResult(pending=total - offset)
        result = self._result

        if result.pending == 0:
            logger.info(f"[{self.name}] Nothing to hash, all {total} files already committed")
            return result

        def should_stop() -> bool:
            return self._abort.is_set() or bool(stopped_flag and stopped_flag())

        recovered = self.store.manifest_entries_for(path for _, path in enumeration.suffix(offset))
        if recovered:
            logger.info(f"[{self.name}] Recovering {len(recovered)} already-hashed file(s) from the manifest")

        start_time = time.time()
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"{self.name}-worker")
        in_flight: Dict[Future, Tuple[int, str]] = {}
        pending_iter = enumeration.suffix(offset)
        exhausted = False

        try:
            while True:
                while not exhausted and len(in_flight) < self.workers:
                    try:
                        index, path = next(pending_iter)
                    except StopIteration:
                        exhausted = True
                        break
                    # A stop only cancels the run while files are still waiting for a worker
                    if should_stop():
                        result.cancelled = True
                        exhausted = True
                        break

                    entry = recovered.get(path)
                    if entry is not None:
                        result.recovered += 1
                        self._accept_recovered(index, entry)
                        continue

                    future = executor.submit(
                        self._hash_one, path, enumeration.size_of(index), should_stop)
                    in_flight[future] = (index, path)

                if not in_flight:
                    break

                finished, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in finished:
                    index, path = in_flight.pop(future)
                    entry, error = future.result()
                    if error is not None:
                        result.skipped += 1
                        result.skipped_paths.append(path)
                    elif entry is None:
                        result.cancelled = True
                    else:
                        result.hashed += 1
                        result.bytes_hashed += entry.size
                        self._accept_hashed(index, entry)

                if progress_callback:
                    progress_callback(self.name, self._next_index, total)
        except BaseException:
            self._abort.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            self.activity.clear()

        elapsed = time.time() - start_time
        logger.info(
            f"[{self.name}] hashed={result.hashed} recovered={result.recovered} "
            f"skipped={result.skipped} committed={result.committed} "
            f"cancelled={result.cancelled} in {elapsed:.2f}s"
        )
        return result

    @property
    def committed_offset(self) -> int:
        """Enumeration index up to which every file is committed."""
        return self._next_index

    def _hash_one(self, path: str, size: Optional[int], should_stop: Callable[[], bool]) -> TaskResult:
        # Runs in a worker thread: no store access here
        if should_stop():
            return None, None
        self.activity.begin(path, size)
        try:
            return self.provider.digest(path, should_stop)
        finally:
            self.activity.end()

    def _accept_hashed(self, index: int, entry: ManifestEntry) -> None:
        if index == self._next_index:
            # Head of the prefix: all three appends in one critical section
            self.store.record(entry)
            self._result.committed += 1
            self._next_index += 1
            self._advance()
        else:
            self.store.record_manifest(entry)
            self._pending_commit[index] = entry

    def _accept_recovered(self, index: int, entry: ManifestEntry) -> None:
        # Already durable in the manifest, only state and ledger are missing
        self._pending_commit[index] = entry
        self._advance()

    def _advance(self) -> None:
        while self._next_index in self._pending_commit:
            entry = self._pending_commit.pop(self._next_index)
            self.store.commit(entry)
            self._result.committed += 1
            self._next_index += 1
