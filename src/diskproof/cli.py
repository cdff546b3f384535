#!/usr/bin/env python3
"""
DiskProof CLI: command line interface for resumable migration verification.
Hashes source and destination trees into hashdeep-compatible manifests, then
proves byte-for-byte that the copy is complete. Read-only: files are never
modified, moved or deleted.
"""
from __future__ import annotations  # Enable postponed evaluation of annotations (PEP 563)
import argparse
import os
import shlex
import sys
import time
from pathlib import Path
from typing import List, NoReturn, Optional
import logging

LOG_FORMAT = "%(levelname)-8s | %(name)-25s | %(message)s"

logging.basicConfig(
    level=logging.ERROR,
    format=LOG_FORMAT
)

# === EARLY DEPENDENCY VALIDATION ===
_MISSING_DEPS = []
try:
    import xxhash
except ImportError:
    _MISSING_DEPS.append("xxhash")

try:
    import filelock
except ImportError:
    _MISSING_DEPS.append("filelock")

try:
    import psutil
except ImportError:
    _MISSING_DEPS.append("psutil")

if _MISSING_DEPS:
    print("❌ Missing required dependencies:", file=sys.stderr)
    print(f"   pip install {' '.join(_MISSING_DEPS)}", file=sys.stderr)
    print("\nOr install the package with its dependencies:", file=sys.stderr)
    print("   pip install -e .", file=sys.stderr)
    sys.exit(1)

# === NORMAL IMPORTS (after validation) ===
from diskproof.core.cancellation import (
    CancellationToken, SentinelWatcher, install_signal_handlers, restore_signal_handlers)
from diskproof.core.exceptions import (
    AlgorithmMismatchError, DiskProofError, IncompleteManifestError, ManifestFormatError)
from diskproof.core.models import (
    DuplicatesParams, ExitCode, HashParams, ProgressSnapshot, VerifyParams)
from diskproof.core.progress import MatchStatus
from diskproof.commands import (
    DuplicatesCommand, HashCommand, QuickCompareCommand, StatusCommand, VerifyCommand)
from diskproof.services.report_service import ReportService
from diskproof.utils.convert_utils import ConvertUtils
from diskproof.aliases import (
    ALGORITHM_ALIASES, ALGORITHM_CHOICES, ALGORITHM_HELP_TEXT,
    ROOT_MAPPING_HELP_TEXT, SIDE_ALIASES, SIDE_CHOICES, WORKERS_HELP_TEXT,
    EPILOG_TEXT
)


class CLIApplication:
    """Main CLI application controller."""

    def __init__(self):
        self.start_time: float = time.time()
        self.verbose: bool = False
        self.quiet: bool = False
        self.token = CancellationToken()

        # Fix encoding for Windows consoles to prevent UnicodeEncodeError
        for stream in (sys.stdout, sys.stderr):
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding='utf-8')

    @staticmethod
    def parse_args(args=None) -> argparse.Namespace:
        """Parse command-line arguments."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output"
        )
        common.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Show detailed progress and log INFO messages"
        )
        common.add_argument(
            "--log-file",
            default=None,
            type=str,
            metavar="FILE",
            help="Also write log messages (INFO and above) to this file"
        )

        manifest_args = argparse.ArgumentParser(add_help=False)
        manifest_args.add_argument(
            "--name", "-n",
            required=True,
            type=str,
            help="Migration name; prefixes every manifest and log file"
        )
        manifest_args.add_argument(
            "--manifest-dir", "-d",
            required=True,
            type=str,
            metavar="DIR",
            dest="manifest_dir",
            help="Directory holding the manifests (e.g. /Volumes/New/_manifests)"
        )

        parser = argparse.ArgumentParser(
            prog="diskproof",
            description="DiskProof: resumable, byte-for-byte verification of disk migrations",
            formatter_class=argparse.RawTextHelpFormatter,
            epilog=EPILOG_TEXT
        )
        subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

        # hash
        p_hash = subparsers.add_parser(
            "hash", parents=[common, manifest_args],
            formatter_class=argparse.RawTextHelpFormatter,
            help="Hash source and/or destination trees (resumable)"
        )
        p_hash.add_argument("--source", "-s", type=str, default=None, help="Source root directory")
        p_hash.add_argument("--dest", "-t", type=str, default=None, help="Destination root directory")
        p_hash.add_argument(
            "--algorithm", "-a",
            choices=ALGORITHM_CHOICES,
            default=None,
            type=str,
            help=ALGORITHM_HELP_TEXT
        )
        p_hash.add_argument("--workers", "-w", default="auto", type=str, help=WORKERS_HELP_TEXT)
        p_hash.add_argument(
            "--stop-file",
            default=None,
            type=str,
            metavar="FILE",
            help="Stop cleanly between files as soon as this file exists"
        )
        p_hash.add_argument(
            "--sizes-file",
            default=None,
            type=str,
            metavar="FILE",
            help="Precomputed 'size path' list of the source tree, used for byte progress"
        )
        p_hash.add_argument(
            "--no-measure",
            action="store_true",
            help="Do not stat files during enumeration (faster on slow media, no byte progress)"
        )
        p_hash.add_argument(
            "--interval",
            default=5.0,
            type=float,
            metavar="SECONDS",
            help="Seconds between progress updates. Default: 5"
        )
        p_hash.add_argument(
            "--lock-timeout",
            default=30.0,
            type=float,
            metavar="SECONDS",
            help="Seconds to wait for the manifest lock. Default: 30"
        )
        p_hash.add_argument(
            "--excluded-dirs", '-e',
            nargs="+",
            default=[],
            type=str,
            metavar="DIR",
            dest="excluded_dirs",
            help="Excluded/ignored directories (space separated)"
        )

        # verify
        p_verify = subparsers.add_parser(
            "verify", parents=[common, manifest_args],
            formatter_class=argparse.RawTextHelpFormatter,
            help="Compare source and destination manifests"
        )
        p_verify.add_argument("--source-root", action="append", default=[], metavar="ROOT",
                              dest="source_roots", help=ROOT_MAPPING_HELP_TEXT)
        p_verify.add_argument("--dest-root", action="append", default=[], metavar="ROOT",
                              dest="dest_roots", help=ROOT_MAPPING_HELP_TEXT)
        p_verify.add_argument("--detailed", action="store_true",
                              help="List every missing, extra and corrupted path")
        p_verify.add_argument("--log-dir", default=None, type=str, metavar="DIR",
                              help="Write <name>_verify_details.txt here. Default: <manifest-dir>/_logs")
        p_verify.add_argument("--allow-incomplete", action="store_true",
                              help="Compare manifests that have no completion marker")

        # duplicates
        p_dup = subparsers.add_parser(
            "duplicates", parents=[common, manifest_args],
            formatter_class=argparse.RawTextHelpFormatter,
            help="Report duplicate content inside one manifest"
        )
        p_dup.add_argument("--side", choices=SIDE_CHOICES, default="dest", type=str,
                           help="Which manifest to analyse. Default: dest")
        p_dup.add_argument("--top", default=None, type=int, metavar="K",
                           help="Show only the K sets wasting the most space")
        p_dup.add_argument("--min-size", "-m", default="0", type=str, metavar="SIZE",
                           help="Ignore files smaller than this (e.g., 500KB, 1MB). Default: 0")
        p_dup.add_argument("--log-dir", default=None, type=str, metavar="DIR",
                           help="Also write <name>_duplicates.txt here")

        # quick-compare
        p_quick = subparsers.add_parser(
            "quick-compare", parents=[common],
            formatter_class=argparse.RawTextHelpFormatter,
            help="Size-only comparison of two trees (no hashing)"
        )
        p_quick.add_argument("source", type=str, help="Source root directory")
        p_quick.add_argument("dest", type=str, help="Destination root directory")
        p_quick.add_argument("--excluded-dirs", '-e', nargs="+", default=[], type=str, metavar="DIR",
                             dest="excluded_dirs", help="Excluded/ignored source directories")

        # status
        subparsers.add_parser(
            "status", parents=[common, manifest_args],
            help="Show hashing progress from the manifests, state logs and ledgers"
        )

        return parser.parse_args(args)

    def configure_logging(self, args: argparse.Namespace) -> None:
        root = logging.getLogger()
        if os.environ.get("DEBUG"):
            root.setLevel(logging.DEBUG)
        elif self.verbose:
            root.setLevel(logging.INFO)
        if args.log_file:
            handler = logging.FileHandler(args.log_file, encoding="utf-8")
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter("%(asctime)s " + LOG_FORMAT))
            root.addHandler(handler)
            if root.level > logging.INFO:
                root.setLevel(logging.INFO)
                # Console keeps its quieter level
                for existing in root.handlers:
                    if existing is not handler:
                        existing.setLevel(logging.ERROR if not self.verbose else logging.INFO)

    # ----- hash -----

    def validate_hash_args(self, args: argparse.Namespace) -> None:
        if not args.source and not args.dest:
            self.error_exit("Nothing to hash: give --source, --dest or both")
        for label, root in (("Source", args.source), ("Destination", args.dest)):
            if not root:
                continue
            root_path = Path(root).resolve()
            if not root_path.exists():
                self.error_exit(f"{label} directory not found: {root}")
            if not root_path.is_dir():
                self.error_exit(f"{label} path is not a directory: {root}")
        if args.sizes_file and not os.path.isfile(args.sizes_file):
            self.error_exit(f"Sizes file not found: {args.sizes_file}")
        if args.stop_file and os.path.exists(args.stop_file):
            self.warning(f"Stop file already exists, nothing will be hashed: {args.stop_file}")
        for excl_dir in args.excluded_dirs:
            excl_path = Path(excl_dir).resolve()
            if not excl_path.exists():
                self.warning(f"Excluded directory not found: {excl_dir}")
            elif not excl_path.is_dir():
                self.warning(f"Excluded path is not a directory: {excl_dir}")

    def create_hash_params(self, args: argparse.Namespace, argv: Optional[List[str]] = None) -> HashParams:
        """Create HashParams from CLI arguments."""
        try:
            workers = ConvertUtils.parse_workers(args.workers)
            algorithm = ALGORITHM_ALIASES[args.algorithm] if args.algorithm else None
            command_line = " ".join(["diskproof"] + [shlex.quote(a) for a in (argv or sys.argv[1:])])
            return HashParams(
                name=args.name,
                manifest_dir=str(Path(args.manifest_dir).resolve()),
                source_root=str(Path(args.source).resolve()) if args.source else None,
                dest_root=str(Path(args.dest).resolve()) if args.dest else None,
                algorithm=algorithm,
                workers=workers,
                stop_file=args.stop_file,
                sizes_file=args.sizes_file,
                measure_sizes=not args.no_measure,
                interval=args.interval,
                lock_timeout=args.lock_timeout,
                excluded_dirs=[str(Path(d.strip()).resolve()) for d in args.excluded_dirs],
                command_line=command_line,
            )
        except ValueError as e:
            self.error_exit(f"Parameter error: {e}")

    def render_progress(self, snapshots: List[ProgressSnapshot], matches: Optional[MatchStatus]) -> None:
        """Live progress block on stderr."""
        if self.quiet:
            return
        elapsed = ConvertUtils.seconds_to_human(time.time() - self.start_time)
        sys.stderr.write(f"\n[{time.strftime('%H:%M:%S')}] elapsed {elapsed}\n")
        sys.stderr.write(ReportService.format_progress(snapshots, matches, show_current=self.verbose) + "\n")
        sys.stderr.flush()

    def run_hash(self, args: argparse.Namespace, argv: Optional[List[str]] = None) -> int:
        self.validate_hash_args(args)
        params = self.create_hash_params(args, argv)

        if not self.quiet:
            for side, root in params.roots():
                print(f"Hashing {side.label.lower()}: {root}")
            print(f"Manifests: {params.manifest_dir}")

        watcher = SentinelWatcher(params.stop_file, self.token) if params.stop_file else None
        previous_handlers = install_signal_handlers(self.token)
        try:
            if watcher:
                watcher.start()
            result = HashCommand().execute(params, stopped_flag=self.token, render=self.render_progress)
        finally:
            if watcher:
                watcher.stop()
            restore_signal_handlers(previous_handlers)

        if not self.quiet:
            print()
            for pipeline in result.pipelines:
                print(ReportService.format_pipeline(pipeline))

        code = result.exit_code
        if code == ExitCode.CANCELLED:
            self.warning(f"Hashing stopped ({self.token.reason or 'cancelled'}). "
                         f"Re-run the same command to resume.")
        elif code == ExitCode.INCOMPLETE:
            self.warning("Some files could not be hashed; they will be retried on the next run.")
        elif code == ExitCode.FAILED:
            errors = [p.error for p in result.pipelines if p.error]
            print(f"❌ Error: {'; '.join(errors) or 'hashing failed'}", file=sys.stderr)
        return int(code)

    # ----- verify -----

    def create_verify_params(self, args: argparse.Namespace) -> VerifyParams:
        try:
            log_dir = args.log_dir or os.path.join(args.manifest_dir, "_logs")
            return VerifyParams(
                name=args.name,
                manifest_dir=args.manifest_dir,
                source_roots=VerifyParams.parse_root_mapping(args.source_roots),
                dest_roots=VerifyParams.parse_root_mapping(args.dest_roots),
                detailed=args.detailed,
                log_dir=log_dir,
                require_complete=not args.allow_incomplete,
            )
        except ValueError as e:
            self.error_exit(f"Parameter error: {e}")

    def run_verify(self, args: argparse.Namespace) -> int:
        params = self.create_verify_params(args)
        try:
            result, log_path = VerifyCommand().execute(params)
        except FileNotFoundError as e:
            self.error_exit(str(e))
        except IncompleteManifestError as e:
            self.error_exit(str(e), code=int(ExitCode.INCOMPLETE))
        except (AlgorithmMismatchError, ManifestFormatError) as e:
            self.error_exit(str(e))

        if not self.quiet:
            print(ReportService.format_verification(result))
            if log_path:
                print(f"See details in: {log_path}")
        return int(ExitCode.OK if result.is_verified else ExitCode.FAILED)

    # ----- duplicates -----

    def run_duplicates(self, args: argparse.Namespace) -> int:
        try:
            params = DuplicatesParams(
                name=args.name,
                manifest_dir=args.manifest_dir,
                side=SIDE_ALIASES[args.side],
                top=args.top,
                min_size_bytes=ConvertUtils.human_to_bytes(args.min_size),
                log_dir=args.log_dir,
            )
        except ValueError as e:
            self.error_exit(f"Parameter error: {e}")

        try:
            report, report_path = DuplicatesCommand().execute(params)
        except (FileNotFoundError, ManifestFormatError) as e:
            self.error_exit(str(e))

        if not self.quiet:
            print(ReportService.format_duplicates(report, top=params.top))
            if report_path:
                print(f"\nReport saved to: {report_path}")
        return int(ExitCode.OK)

    # ----- quick-compare -----

    def run_quick_compare(self, args: argparse.Namespace) -> int:
        for label, root in (("Source", args.source), ("Destination", args.dest)):
            if not Path(root).is_dir():
                self.error_exit(f"{label} directory not found: {root}")

        previous_handlers = install_signal_handlers(self.token)
        try:
            result = QuickCompareCommand().execute(
                str(Path(args.source).resolve()),
                str(Path(args.dest).resolve()),
                excluded_dirs=[str(Path(d).resolve()) for d in args.excluded_dirs],
                stopped_flag=self.token,
                progress_callback=self.progress_callback if self.verbose else None,
            )
        finally:
            restore_signal_handlers(previous_handlers)

        if self.verbose:
            sys.stderr.write("\n")
        if not self.quiet:
            print(ReportService.format_quick_compare(result))
        if result.cancelled:
            return int(ExitCode.CANCELLED)
        return int(ExitCode.OK if result.passed else ExitCode.FAILED)

    # ----- status -----

    def run_status(self, args: argparse.Namespace) -> int:
        statuses = StatusCommand().execute(args.name, args.manifest_dir)
        if not self.quiet:
            print(ReportService.format_status(statuses))
        return int(ExitCode.OK)

    def progress_callback(self, stage: str, current: int, total: Optional[int]) -> None:
        """CLI progress callback - shows progress in console."""
        if not self.verbose:
            return

        if total and total > 0:
            percent = (current / total) * 100
            sys.stderr.write(
                f"\r  [{stage}] {current}/{total} ({percent:.1f}%)"
            )
            sys.stderr.flush()
        else:
            sys.stderr.write(f"\r  [{stage}] {current} files processed...")
            sys.stderr.flush()

    def warning(self, message: str) -> None:
        """Print a warning message to stderr."""
        if not self.quiet:
            print(f"⚠️  {message}", file=sys.stderr)

    @staticmethod
    def error_exit(message: str, code: int = 1) -> NoReturn:
        """Print error and exit."""
        print(f"❌ Error: {message}", file=sys.stderr)
        sys.exit(code)

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Main entry point: dispatch to the subcommand and return its exit code."""
        args = self.parse_args(argv)
        self.verbose = args.verbose
        self.quiet = args.quiet
        self.configure_logging(args)

        handlers = {
            "hash": lambda: self.run_hash(args, argv),
            "verify": lambda: self.run_verify(args),
            "duplicates": lambda: self.run_duplicates(args),
            "quick-compare": lambda: self.run_quick_compare(args),
            "status": lambda: self.run_status(args),
        }
        try:
            code = handlers[args.command]()
        except DiskProofError as e:
            self.error_exit(str(e))

        elapsed = time.time() - self.start_time
        if self.verbose:
            print(f"\n✅ Completed in {elapsed:.2f} seconds")
        return code


def main() -> None:
    """Application entry point."""
    app = CLIApplication()
    try:
        sys.exit(app.run())
    except KeyboardInterrupt:
        print("\n⚠️  Operation cancelled by user (Ctrl+C)")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("DEBUG"):
            raise
        print(f"❌ Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
