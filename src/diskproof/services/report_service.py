"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

services/report_service.py
Human-readable text for every result the engine produces, and the report files
written next to the manifests (_logs/<name>_verify_details.txt, <name>_duplicates.txt).
"""
import os
import time
from typing import List, Optional

from diskproof.core.models import (
    ComparisonResult, DuplicateReport, PipelineResult, PipelineStatus, ProgressSnapshot,
    QuickCompareResult, SideStatus)
from diskproof.core.progress import MatchStatus
from diskproof.utils.convert_utils import ConvertUtils

RULE = "=" * 60


class ReportService:
    @staticmethod
    def verify_log_path(log_dir: str, name: str) -> str:
        return os.path.join(log_dir, f"{name}_verify_details.txt")

    @staticmethod
    def duplicates_report_path(log_dir: str, name: str) -> str:
        return os.path.join(log_dir, f"{name}_duplicates.txt")

    @staticmethod
    def write_report(text: str, path: str) -> str:
        """Writes a report, creating its directory. Returns the path."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8", errors="surrogateescape") as f:
            f.write(text)
            if not text.endswith("\n"):
                f.write("\n")
        return path

    # ----- hashing -----

    @staticmethod
    def format_progress_line(snapshot: ProgressSnapshot) -> str:
        """One status line per pipeline, e.g. 'SOURCE  1200/5000 files  42.0%  85.00MB/s  ETA 1h 02m'."""
        total_files = snapshot.total_files if snapshot.total_files is not None else "?"
        percent = snapshot.percent
        percent_str = f"{percent:5.1f}%" if percent is not None else "  ?  "
        line = (
            f"{snapshot.label:<7} {snapshot.files_done}/{total_files} files  "
            f"{ConvertUtils.bytes_to_human(snapshot.bytes_done)}/"
            f"{ConvertUtils.bytes_to_human(snapshot.total_bytes)}  {percent_str}  "
            f"{ConvertUtils.rate_to_human(snapshot.throughput_bps)}  "
            f"ETA {ConvertUtils.seconds_to_human(snapshot.eta_seconds)}"
        )
        if snapshot.awaiting_commit:
            line += f"  (+{snapshot.awaiting_commit} hashed, awaiting commit)"
        if not snapshot.running:
            line += "  [done]"
        return line

    @staticmethod
    def format_progress(snapshots: List[ProgressSnapshot], matches: Optional[MatchStatus] = None,
                        show_current: bool = False) -> str:
        lines = [ReportService.format_progress_line(s) for s in snapshots]
        if show_current:
            for snapshot in snapshots:
                for size, path in snapshot.current:
                    lines.append(f"    ↳ {snapshot.label}: {path} [{ConvertUtils.bytes_to_human(size)}]")
        if matches is not None:
            lines.append(f"Hash matches so far: {matches.matches} (pending: {matches.pending})")
        return "\n".join(lines)

    @staticmethod
    def format_pipeline(result: PipelineResult) -> str:
        icon = {
            PipelineStatus.COMPLETE: "✅",
            PipelineStatus.INCOMPLETE: "⚠️ ",
            PipelineStatus.CANCELLED: "⏹️ ",
            PipelineStatus.FAILED: "❌",
        }[result.status]
        lines = [f"{icon} {result.side.label}: {result.status.value} ({result.root})"]
        if result.error:
            lines.append(f"   Error: {result.error}")
            return "\n".join(lines)

        lines.append(f"   Manifest: {result.manifest_path}")
        lines.append(f"   Files: {result.total_files} (resumed at {result.resume_offset})")
        if result.media is not None:
            lines.append(f"   Media: {result.media.display_name}, {result.workers} worker(s)")
        elif result.workers:
            lines.append(f"   Workers: {result.workers}")
        schedule = result.schedule
        if schedule is not None:
            lines.append(
                f"   Hashed: {schedule.hashed} ({ConvertUtils.bytes_to_human(schedule.bytes_hashed)}), "
                f"recovered: {schedule.recovered}, skipped: {schedule.skipped}"
            )
            for path in schedule.skipped_paths[:5]:
                lines.append(f"     • {path}")
            if len(schedule.skipped_paths) > 5:
                lines.append(f"     ...and {len(schedule.skipped_paths) - 5} more files")
        if result.enumeration_errors:
            lines.append(f"   Unreadable during enumeration: {result.enumeration_errors}")
        lines.append(f"   Elapsed: {ConvertUtils.seconds_to_human(result.elapsed)}")
        return "\n".join(lines)

    # ----- verification -----

    @staticmethod
    def format_verification(result: ComparisonResult) -> str:
        """Console summary of a comparison."""
        lines = [
            "=== VERIFICATION RESULTS ===",
            f"Algorithm: {result.algorithm.display_name}",
            f"Source files: {result.source_total}",
            f"Destination files: {result.dest_total}",
        ]
        if result.source_container_entries or result.dest_container_entries:
            lines.append(f"  Files inside containers: {result.source_container_entries} → "
                         f"{result.dest_container_entries}")
        lines.append("")
        lines.append(f"✅ Perfect matches: {result.matched_count} files")
        if result.missing_count:
            lines.append(f"❌ Missing from destination: {result.missing_count} files")
        if result.corrupted_count:
            lines.append(f"🚨 CORRUPTED FILES: {result.corrupted_count} files")
        if result.extra_count:
            lines.append(f"⚠️  Extra files in destination: {result.extra_count} files")
        if result.source_total != result.dest_total:
            lines.append(f"⚠️  File count differs: {result.source_total} → {result.dest_total}")
        lines.append("")

        if result.is_verified:
            lines.append("✅ VERIFICATION PASSED")
            lines.append(f"All {result.matched_count} files copied perfectly!")
        else:
            lines.append("❌ VERIFICATION ISSUES FOUND")
            if result.missing_count:
                lines.append(f"  → {result.missing_count} files missing from destination")
            if result.corrupted_count:
                lines.append(f"  → {result.corrupted_count} files corrupted (hash mismatch)")
            if result.extra_count:
                lines.append(f"  → {result.extra_count} extra files in destination")
        lines.append(f"Verification Status: {result.status.value}")
        return "\n".join(lines)

    @staticmethod
    def format_verification_details(result: ComparisonResult, name: str = "") -> str:
        """Contents of the verify-details log."""
        lines = [
            f"Verification log{' for ' + name if name else ''}",
            f"Generated: {time.strftime('%Y-%m-%d %H:%M:%S')}",
            RULE,
            ReportService.format_verification(result),
        ]

        lines += ["", "MISSING FILES (in source but not in destination):",
                  f"Total missing: {result.missing_count}"]
        if result.detailed:
            for item in result.missing_items:
                lines.append(f"  - {item.path} [{ConvertUtils.bytes_to_human(item.size)}]")
        elif result.missing_count:
            lines.append("  Run with --detailed to see specific file names")

        lines += ["", "CORRUPTED FILES (hash mismatch between source and destination):",
                  f"Total corrupted: {result.corrupted_count}"]
        for item in result.corrupted:
            lines.append(f"  - {item.path}")
            lines.append(f"    Source hash: {item.source_digest}")
            lines.append(f"    Dest hash:   {item.dest_digest}")

        lines += ["", "EXTRA FILES (in destination but not in source):",
                  f"Total extra: {result.extra_count}"]
        if result.detailed:
            for item in result.extra_items:
                lines.append(f"  - {item.path} [{ConvertUtils.bytes_to_human(item.size)}]")
        elif result.extra_count:
            lines.append("  Run with --detailed to see specific file names")
        return "\n".join(lines)

    # ----- duplicates -----

    @staticmethod
    def format_duplicates(report: DuplicateReport, top: Optional[int] = None) -> str:
        if not report.sets:
            return f"No duplicate files found among {report.total_entries} entries."

        duplicated_files = sum(s.count for s in report.sets)
        lines = [
            f"Found {report.set_count} duplicate sets ({duplicated_files} files) "
            f"among {report.total_entries} entries",
            f"Total wasted space: {ConvertUtils.bytes_to_human(report.total_wasted)}",
        ]
        shown = report.sets if top is None else report.sets[:top]
        for idx, dup in enumerate(shown, 1):
            lines.append("")
            lines.append(
                f"📁 Set {idx} | Size: {ConvertUtils.bytes_to_human(dup.size)} | Copies: {dup.count} | "
                f"Wasted: {ConvertUtils.bytes_to_human(dup.wasted_bytes)}"
            )
            lines.append(f"   Hash: {dup.digest}")
            for path in dup.paths:
                lines.append(f"   {path}")
        if len(shown) < report.set_count:
            lines.append("")
            lines.append(f"...and {report.set_count - len(shown)} more sets")
        return "\n".join(lines)

    # ----- quick compare -----

    @staticmethod
    def format_quick_compare(result: QuickCompareResult, limit: int = 20) -> str:
        lines = [
            "=== QUICK COMPARE (size only) ===",
            f"Source files: {result.source_count}",
            f"Destination files: {result.dest_count}",
        ]
        if result.count_mismatch:
            lines.append(f"⚠️  File count mismatch: {result.source_count} → {result.dest_count}")
        lines.append(f"✅ Size matches: {result.matches}")

        if result.missing:
            lines.append(f"❌ Missing from destination: {len(result.missing)}")
            for path in result.missing[:limit]:
                lines.append(f"   - {path}")
            if len(result.missing) > limit:
                lines.append(f"   ...and {len(result.missing) - limit} more files")
        if result.size_mismatches:
            lines.append(f"🚨 Size mismatches: {len(result.size_mismatches)}")
            for path, src_size, dst_size in result.size_mismatches[:limit]:
                lines.append(f"   - {path}: {ConvertUtils.bytes_to_human(src_size)} → "
                             f"{ConvertUtils.bytes_to_human(dst_size)}")
            if len(result.size_mismatches) > limit:
                lines.append(f"   ...and {len(result.size_mismatches) - limit} more files")

        lines.append("")
        if result.cancelled:
            lines.append("⏹️  Quick compare cancelled")
        elif result.passed:
            lines.append("✅ QUICK COMPARE PASSED (run `verify` for byte-level proof)")
        else:
            lines.append("❌ QUICK COMPARE FAILED")
        return "\n".join(lines)

    # ----- status -----

    @staticmethod
    def format_status(statuses: List[SideStatus]) -> str:
        lines = []
        for status in statuses:
            lines.append(f"{status.side.label}: {status.manifest_path}")
            if status.error:
                lines.append(f"   ❌ {status.error}")
                continue
            if not status.exists:
                lines.append("   Not started")
                continue
            lines.append(f"   Algorithm: {status.algorithm.display_name if status.algorithm else '?'}")
            lines.append(f"   Manifest entries: {status.manifest_entries}")
            lines.append(f"   Committed (state rows): {status.state_rows}")
            lines.append(f"   Bytes committed: {ConvertUtils.bytes_to_human(status.bytes_done)}")
            if status.complete:
                lines.append(f"   ✅ Complete{' since ' + status.completed_at if status.completed_at else ''}")
            elif status.caught_up:
                lines.append("   ⏸️  In progress, state log caught up with the manifest")
            else:
                lines.append(f"   ⏸️  In progress, {status.manifest_entries - status.state_rows} "
                             f"entries await recovery on the next run")
        return "\n".join(lines)
