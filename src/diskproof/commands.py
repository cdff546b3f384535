"""
Unified command orchestrators for hashing and verification.
This is the single place where the core engine is wired together; the CLI only
parses arguments and prints results.
"""
import os
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from diskproof.core.comparator import ManifestComparator
from diskproof.core.grouper import DuplicateDetector
from diskproof.core.models import (
    ComparisonResult, DuplicateReport, DuplicatesParams, ExitCode, HashParams, PipelineResult,
    PipelineStatus, ProgressSnapshot, QuickCompareResult, Side, SideStatus, VerifyParams)
from diskproof.core.normalizer import PathNormalizer
from diskproof.core.pipeline import HashPipeline
from diskproof.core.progress import LiveMatchCounter, MatchStatus, ProgressAggregator
from diskproof.core.quick_compare import QuickComparator
from diskproof.core.store import (
    ManifestPaths, count_lines, iter_entries, read_completion, read_header, read_manifest,
    read_sizes_file, sum_ledger)
from diskproof.core.exceptions import DiskProofError
from diskproof.services.report_service import ReportService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, Optional[int]], None]
RenderCallback = Callable[[List[ProgressSnapshot], Optional[MatchStatus]], None]


@dataclass
class HashRunResult:
    """One PipelineResult per configured side, source first."""
    pipelines: List[PipelineResult] = field(default_factory=list)
    final_progress: List[ProgressSnapshot] = field(default_factory=list)

    @property
    def exit_code(self) -> ExitCode:
        statuses = {p.status for p in self.pipelines}
        if PipelineStatus.CANCELLED in statuses:
            return ExitCode.CANCELLED
        if PipelineStatus.FAILED in statuses:
            return ExitCode.FAILED
        if PipelineStatus.INCOMPLETE in statuses:
            return ExitCode.INCOMPLETE
        return ExitCode.OK

    def for_side(self, side: Side) -> Optional[PipelineResult]:
        for result in self.pipelines:
            if result.side == side:
                return result
        return None


class HashCommand:
    """
    Hashes the configured trees, each in its own thread, and samples progress
    on the calling thread until both have exited.

    Usage:
        params = HashParams(name="Project_2015", manifest_dir="./_manifests",
                            source_root="/Volumes/Old", dest_root="/Volumes/New/Project_2015")
        result = HashCommand().execute(params, stopped_flag=token, render=print_progress)
    """

    def __init__(self):
        self._pipelines: List[HashPipeline] = []

    def build_pipelines(self, params: HashParams) -> List[HashPipeline]:
        os.makedirs(params.manifest_dir, exist_ok=True)
        pipelines = []
        for side, root in params.roots():
            total_bytes_hint = None
            if side == Side.SOURCE and params.sizes_file:
                total_bytes_hint = read_sizes_file(params.sizes_file)
                logger.info(f"Total source size from {params.sizes_file}: {total_bytes_hint} bytes")
            pipelines.append(HashPipeline(
                side=side,
                root=root,
                paths=ManifestPaths.for_side(params.manifest_dir, params.name, side),
                algorithm=params.algorithm,
                workers=params.workers,
                excluded_dirs=params.excluded_dirs,
                measure_sizes=params.measure_sizes,
                total_bytes_hint=total_bytes_hint,
                lock_timeout=params.lock_timeout,
                command=params.command_line,
            ))
        return pipelines

    def execute(
            self,
            params: HashParams,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[ProgressCallback] = None,
            render: Optional[RenderCallback] = None,
    ) -> HashRunResult:
        """
        Args:
            params: Validated hashing parameters
            stopped_flag: () -> bool (returns True if hashing should stop between files)
            progress_callback: (stage, committed, total) -> None, called from pipeline threads
            render: periodic live progress, called on this thread every params.interval seconds
        """
        self._pipelines = self.build_pipelines(params)
        results: Dict[Side, PipelineResult] = {}

        def run_pipeline(pipeline: HashPipeline) -> None:
            results[pipeline.side] = pipeline.run(stopped_flag=stopped_flag,
                                                  progress_callback=progress_callback)

        threads = [
            threading.Thread(target=run_pipeline, args=(p,), name=f"pipeline-{p.side.value}", daemon=True)
            for p in self._pipelines
        ]
        for thread in threads:
            thread.start()

        final_progress: List[ProgressSnapshot] = []
        if render is not None:
            match_counter = None
            if len(self._pipelines) == 2:
                match_counter = LiveMatchCounter(self._pipelines[0].paths.manifest,
                                                 self._pipelines[1].paths.manifest)
            aggregator = ProgressAggregator(self._pipelines, interval=params.interval,
                                            match_counter=match_counter)
            final_progress = aggregator.run(render)

        for thread in threads:
            thread.join()

        return HashRunResult(
            pipelines=[results[p.side] for p in self._pipelines],
            final_progress=final_progress,
        )

    def get_pipelines(self) -> List[HashPipeline]:
        return list(self._pipelines)


class VerifyCommand:
    """Compares the source manifest against the destination manifest."""

    def execute(self, params: VerifyParams) -> Tuple[ComparisonResult, Optional[str]]:
        """
        Returns:
            (comparison result, path of the details log or None)

        Raises:
            FileNotFoundError: If a manifest is missing
            AlgorithmMismatchError / IncompleteManifestError: precondition failures
        """
        source_paths = ManifestPaths.for_side(params.manifest_dir, params.name, Side.SOURCE)
        dest_paths = ManifestPaths.for_side(params.manifest_dir, params.name, Side.DEST)
        for label, path in (("Source", source_paths.manifest), ("Destination", dest_paths.manifest)):
            if not os.path.exists(path):
                raise FileNotFoundError(f"{label} manifest not found: {path}. Run `diskproof hash` first")

        source = read_manifest(source_paths.manifest)
        dest = read_manifest(dest_paths.manifest)

        source_roots = params.source_roots or {source.header.invoked_from: ""}
        dest_roots = params.dest_roots or {dest.header.invoked_from: ""}
        comparator = ManifestComparator(
            source_normalizer=PathNormalizer({k: v for k, v in source_roots.items() if k}),
            dest_normalizer=PathNormalizer({k: v for k, v in dest_roots.items() if k}),
            require_complete=params.require_complete,
        )
        result = comparator.compare(source, dest, detailed=params.detailed)

        log_path = None
        if params.log_dir:
            log_path = ReportService.write_report(
                ReportService.format_verification_details(result, params.name),
                ReportService.verify_log_path(params.log_dir, params.name),
            )
        return result, log_path


class DuplicatesCommand:
    def execute(self, params: DuplicatesParams) -> Tuple[DuplicateReport, Optional[str]]:
        """Raises FileNotFoundError if the manifest of the requested side does not exist."""
        paths = ManifestPaths.for_side(params.manifest_dir, params.name, params.side)
        if not os.path.exists(paths.manifest):
            raise FileNotFoundError(f"Manifest not found: {paths.manifest}")

        report = DuplicateDetector().find(read_manifest(paths.manifest), min_size=params.min_size_bytes)

        report_path = None
        if params.log_dir:
            report_path = ReportService.write_report(
                ReportService.format_duplicates(report),
                ReportService.duplicates_report_path(params.log_dir, params.name),
            )
        return report, report_path


class QuickCompareCommand:
    def execute(
            self,
            source_root: str,
            dest_root: str,
            excluded_dirs: Optional[List[str]] = None,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[ProgressCallback] = None,
    ) -> QuickCompareResult:
        comparator = QuickComparator(source_root, dest_root, excluded_dirs=excluded_dirs)
        return comparator.compare(stopped_flag=stopped_flag, progress_callback=progress_callback)


class StatusCommand:
    """Offline progress of a migration from its durable files; nothing is hashed."""

    def execute(self, name: str, manifest_dir: str) -> List[SideStatus]:
        return [self.side_status(manifest_dir, name, side) for side in (Side.SOURCE, Side.DEST)]

    @staticmethod
    def side_status(manifest_dir: str, name: str, side: Side) -> SideStatus:
        paths = ManifestPaths.for_side(manifest_dir, name, side)
        status = SideStatus(side=side, manifest_path=paths.manifest)
        if not os.path.exists(paths.manifest):
            return status

        status.exists = True
        try:
            status.algorithm = read_header(paths.manifest).algorithm
        except DiskProofError as e:
            status.error = str(e)
            return status
        status.manifest_entries = sum(1 for _ in iter_entries(paths.manifest))
        status.state_rows = count_lines(paths.state)
        status.bytes_done = sum_ledger(paths.ledger)
        completion = read_completion(paths.manifest)
        status.complete = completion is not None
        if completion:
            status.completed_at = completion.get("completed_at")
        return status
