"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/progress.py
Live progress derived from the durable logs, never from in-memory counters of
the hashing threads.

Per pipeline, every interval:
- files done   = rows in the state log
- bytes done   = sum of the byte ledger
- percent      = bytes done / total bytes (file ratio when total bytes are unknown)
- throughput   = rolling average of the last K interval rates
- ETA          = remaining bytes / throughput (file rate fallback)
- hashed       = entries in the manifest, which runs ahead of the state log
                 while a failed file holds back the committed prefix

Logs are read through LogTail, so each poll costs only the lines appended since
the previous one. A pipeline is not read until its store is open, and a log
that shrinks is counted again from zero. A LiveMatchCounter tails both
manifests and keeps a running count of digests already present on both sides.
"""

import time
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

from diskproof.core.interfaces import ProgressSource
from diskproof.core.models import EngineConfig, ManifestEntry, ProgressSnapshot
from diskproof.core.store import LogTail

logger = logging.getLogger(__name__)


@dataclass
class MatchStatus:
    matches: int
    pending: int
    source_digests: int
    dest_digests: int


class LiveMatchCounter:
    """Incremental |digests(source) ∩ digests(dest)| over two growing manifests."""

    def __init__(self, source_manifest: str, dest_manifest: str):
        self._tails = {"source": LogTail(source_manifest), "dest": LogTail(dest_manifest)}
        self._digests: Dict[str, Set[str]] = {"source": set(), "dest": set()}
        self.matches = 0

    def poll(self) -> MatchStatus:
        for side, other in (("source", "dest"), ("dest", "source")):
            own = self._digests[side]
            theirs = self._digests[other]
            for line in self._tails[side].poll():
                if not line[:1].isdigit():
                    continue
                try:
                    digest = ManifestEntry.from_line(line).digest
                except ValueError:
                    continue
                if digest in own:
                    continue
                own.add(digest)
                if digest in theirs:
                    self.matches += 1
        return self.status

    @property
    def status(self) -> MatchStatus:
        source = len(self._digests["source"])
        return MatchStatus(
            matches=self.matches,
            pending=source - self.matches,
            source_digests=source,
            dest_digests=len(self._digests["dest"]),
        )


def _poll_tail(tail: LogTail) -> Tuple[List[str], bool]:
    """New lines of a log, and whether the tail restarted from the beginning."""
    generation = tail.generation
    lines = tail.poll()
    return lines, tail.generation != generation


class _SourceTracker:
    """Incremental counters and rate history of one pipeline."""

    def __init__(self, source: ProgressSource, window: int):
        self.source = source
        self.state_tail = LogTail(source.paths.state)
        self.ledger_tail = LogTail(source.paths.ledger)
        self.manifest_tail = LogTail(source.paths.manifest)
        self.files_done = 0
        self.bytes_done = 0
        self.hashed_files = 0
        self.hashed_bytes = 0
        self.last_sample: Optional[Tuple[float, int, int]] = None
        self.byte_rates: Deque[float] = deque(maxlen=window)
        self.file_rates: Deque[float] = deque(maxlen=window)

    def poll(self, now: float) -> None:
        # The store repairs torn tails while it opens; nothing is read before that
        if not self.source.ready:
            return

        state_lines, state_restarted = _poll_tail(self.state_tail)
        if state_restarted:
            self.files_done = 0
        self.files_done += len(state_lines)

        ledger_lines, ledger_restarted = _poll_tail(self.ledger_tail)
        if ledger_restarted:
            self.bytes_done = 0
        for line in ledger_lines:
            try:
                self.bytes_done += int(line)
            except ValueError:
                continue

        manifest_lines, manifest_restarted = _poll_tail(self.manifest_tail)
        if manifest_restarted:
            self.hashed_files = 0
            self.hashed_bytes = 0
        for line in manifest_lines:
            if not line[:1].isdigit():
                continue
            try:
                entry = ManifestEntry.from_line(line)
            except ValueError:
                continue
            self.hashed_files += 1
            self.hashed_bytes += entry.size

        if state_restarted or ledger_restarted:
            # Totals were rebuilt; no rate for this interval
            self.last_sample = None
        elif self.last_sample is not None:
            then, prev_bytes, prev_files = self.last_sample
            dt = now - then
            if dt > 0:
                self.byte_rates.append((self.bytes_done - prev_bytes) / dt)
                self.file_rates.append((self.files_done - prev_files) / dt)
        self.last_sample = (now, self.bytes_done, self.files_done)


def _average(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


class ProgressAggregator:
    """
    Periodic sampler over one or more running pipelines.
    Owned by the caller; holds no module-level state.
    """

    def __init__(
            self,
            sources: List[ProgressSource],
            interval: float = EngineConfig.PROGRESS_INTERVAL,
            window: int = EngineConfig.THROUGHPUT_WINDOW,
            match_counter: Optional[LiveMatchCounter] = None,
            clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("Progress interval must be positive")
        if window < 1:
            raise ValueError("Throughput window must be at least 1")
        self.interval = interval
        self.match_counter = match_counter
        self._clock = clock
        self._start = clock()
        self._trackers = [_SourceTracker(s, window) for s in sources]

    def sample(self) -> List[ProgressSnapshot]:
        """Polls every log once and returns one snapshot per pipeline."""
        now = self._clock()
        snapshots = []
        for tracker in self._trackers:
            tracker.poll(now)
            snapshots.append(self._snapshot(tracker, now))
        return snapshots

    def matches(self) -> Optional[MatchStatus]:
        if self.match_counter is None:
            return None
        return self.match_counter.poll()

    def all_finished(self) -> bool:
        return all(t.source.finished for t in self._trackers)

    def run(
            self,
            render: Callable[[List[ProgressSnapshot], Optional[MatchStatus]], None],
            sleep: Callable[[float], object] = time.sleep,
    ) -> List[ProgressSnapshot]:
        """
        Renders a sample every interval until all pipelines have exited,
        then renders and returns a final sample.
        """
        self.sample()  # baseline: work done before this run is not throughput
        tick = min(self.interval, 0.25)
        next_render = self._clock() + self.interval
        while not self.all_finished():
            sleep(tick)
            if self._clock() >= next_render:
                render(self.sample(), self.matches())
                next_render = self._clock() + self.interval
        final = self.sample()
        render(final, self.matches())
        return final

    def _snapshot(self, tracker: _SourceTracker, now: float) -> ProgressSnapshot:
        source = tracker.source
        throughput = _average(tracker.byte_rates)
        file_rate = _average(tracker.file_rates)

        eta = None
        if source.total_bytes and throughput:
            eta = max(0.0, (source.total_bytes - tracker.bytes_done) / throughput)
        elif source.total_files and file_rate:
            eta = max(0.0, (source.total_files - tracker.files_done) / file_rate)

        return ProgressSnapshot(
            label=source.label,
            files_done=tracker.files_done,
            total_files=source.total_files,
            bytes_done=tracker.bytes_done,
            total_bytes=source.total_bytes,
            hashed_files=tracker.hashed_files,
            hashed_bytes=tracker.hashed_bytes,
            elapsed=now - self._start,
            running=not source.finished,
            throughput_bps=throughput,
            files_per_second=file_rate,
            eta_seconds=eta,
            current=source.activity.snapshot(),
        )
