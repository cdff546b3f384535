"""
End-to-end CLI tests: argument parsing, exit codes and console output.
Every command is read-only; these tests also check that no file is ever modified.
"""
import hashlib

import pytest

from diskproof.cli import CLIApplication
from diskproof.core.models import ExitCode


def tree_fingerprint(root):
    return {str(p): hashlib.sha256(p.read_bytes()).hexdigest() for p in sorted(root.rglob("*")) if p.is_file()}


def run_cli(args):
    return CLIApplication().run(args)


@pytest.fixture
def manifest_dir(temp_dir):
    return str(temp_dir / "_manifests")


@pytest.fixture
def hashed(source_tree, dest_tree, manifest_dir):
    """Both trees hashed to completion."""
    code = run_cli(["hash", "-q", "-n", "job", "-d", manifest_dir,
                    "-s", str(source_tree["root"]), "-t", str(dest_tree),
                    "-w", "2", "--interval", "0.05"])
    assert code == ExitCode.OK
    return manifest_dir


class TestArgumentParsing:
    def test_hash_defaults(self):
        args = CLIApplication.parse_args(["hash", "-n", "job", "-d", "/m", "-s", "/src"])

        assert args.command == "hash"
        assert args.workers == "auto"
        assert args.algorithm is None
        assert args.dest is None
        assert args.excluded_dirs == []
        assert args.interval == 5.0

    def test_verify_root_mappings_repeat(self):
        args = CLIApplication.parse_args([
            "verify", "-n", "job", "-d", "/m",
            "--source-root", "/Volumes/Old", "--dest-root", "/Volumes/New/3=", "--dest-root", "/mnt/x=y",
        ])

        assert args.source_roots == ["/Volumes/Old"]
        assert args.dest_roots == ["/Volumes/New/3=", "/mnt/x=y"]

    def test_name_is_required(self):
        with pytest.raises(SystemExit):
            CLIApplication.parse_args(["status", "-d", "/m"])

    def test_unknown_algorithm_rejected(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            CLIApplication.parse_args(["hash", "-n", "job", "-d", "/m", "-s", "/src", "-a", "md5"])
        assert exc_info.value.code == 2
        assert "invalid choice: 'md5'" in capsys.readouterr().err

    @pytest.mark.parametrize("command", ["hash", "verify", "duplicates", "quick-compare", "status"])
    def test_subcommand_help(self, command, capsys):
        with pytest.raises(SystemExit) as exc_info:
            CLIApplication.parse_args([command, "-h"])
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert out.startswith(f"usage: diskproof {command}")

    def test_hash_help_names_option_values(self, capsys):
        with pytest.raises(SystemExit):
            CLIApplication.parse_args(["hash", "-h"])
        out = capsys.readouterr().out
        assert "--manifest-dir DIR" in out
        assert "--stop-file FILE" in out
        assert "--interval SECONDS" in out

    def test_missing_name_is_a_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            CLIApplication.parse_args(["duplicates", "-d", "/m"])
        assert exc_info.value.code == 2
        assert "--name" in capsys.readouterr().err


class TestHashCli:
    """Test the hash subcommand."""

    def test_hash_then_verify_passes(self, source_tree, dest_tree, hashed, capsys):
        before = tree_fingerprint(source_tree["root"])

        code = run_cli(["verify", "-n", "job", "-d", hashed])

        out = capsys.readouterr().out
        assert code == ExitCode.OK
        assert "✅ VERIFICATION PASSED" in out
        assert "Verification Status: VERIFIED" in out
        assert tree_fingerprint(source_tree["root"]) == before

    def test_nothing_to_hash(self, manifest_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run_cli(["hash", "-n", "job", "-d", manifest_dir])
        assert exc_info.value.code == 1
        assert "Nothing to hash" in capsys.readouterr().err

    def test_missing_source_dir(self, temp_dir, manifest_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["hash", "-n", "job", "-d", manifest_dir, "-s", str(temp_dir / "nope")])
        assert "Source directory not found" in capsys.readouterr().err

    def test_invalid_workers(self, source_tree, manifest_dir, capsys):
        with pytest.raises(SystemExit):
            run_cli(["hash", "-n", "job", "-d", manifest_dir, "-s", str(source_tree["root"]), "-w", "0"])
        assert "Parameter error" in capsys.readouterr().err

    def test_existing_stop_file_cancels(self, source_tree, manifest_dir, temp_dir, capsys):
        stop_file = temp_dir / "STOP"
        stop_file.write_text("")

        code = run_cli(["hash", "-n", "job", "-d", manifest_dir, "-s", str(source_tree["root"]),
                        "-w", "1", "--interval", "0.05", "--stop-file", str(stop_file)])

        assert code == ExitCode.CANCELLED
        assert "Re-run the same command to resume" in capsys.readouterr().err

    def test_algorithm_mismatch_fails(self, source_tree, dest_tree, hashed, capsys):
        code = run_cli(["hash", "-q", "-n", "job", "-d", hashed, "-s", str(source_tree["root"]),
                        "-a", "xxh64", "-w", "1", "--interval", "0.05"])

        assert code == ExitCode.FAILED
        assert "refusing to append xxh64" in capsys.readouterr().err


class TestVerifyCli:
    def test_corruption_fails_and_writes_log(self, source_tree, dest_tree, manifest_dir, temp_dir, capsys):
        (dest_tree / "photos" / "2015" / "c.mov").write_bytes(b"\x00" * 5120)
        run_cli(["hash", "-q", "-n", "job", "-d", manifest_dir, "-s", str(source_tree["root"]),
                 "-t", str(dest_tree), "-w", "2", "--interval", "0.05"])
        capsys.readouterr()

        code = run_cli(["verify", "-n", "job", "-d", manifest_dir, "--detailed"])

        out = capsys.readouterr().out
        assert code == ExitCode.FAILED
        assert "🚨 CORRUPTED FILES: 1 files" in out
        assert "See details in:" in out
        log = temp_dir / "_manifests" / "_logs" / "job_verify_details.txt"
        assert "photos/2015/c.mov" in log.read_text(encoding="utf-8")

    def test_incomplete_manifest_exit_code(self, source_tree, manifest_dir, temp_dir):
        stop_file = temp_dir / "STOP"
        stop_file.write_text("")
        run_cli(["hash", "-q", "-n", "job", "-d", manifest_dir, "-s", str(source_tree["root"]),
                 "-t", str(source_tree["root"]), "--stop-file", str(stop_file), "--interval", "0.05"])

        with pytest.raises(SystemExit) as exc_info:
            run_cli(["verify", "-n", "job", "-d", manifest_dir])
        assert exc_info.value.code == ExitCode.INCOMPLETE

    def test_missing_manifests(self, manifest_dir, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run_cli(["verify", "-n", "job", "-d", manifest_dir])
        assert exc_info.value.code == 1
        assert "manifest not found" in capsys.readouterr().err


class TestOtherCommands:
    def test_duplicates(self, hashed, capsys):
        code = run_cli(["duplicates", "-n", "job", "-d", hashed, "--side", "source", "--top", "5"])

        out = capsys.readouterr().out
        assert code == ExitCode.OK
        assert "Found 1 duplicate sets" in out
        assert "Total wasted space: 1.00KB" in out

    def test_duplicates_min_size(self, hashed, capsys):
        code = run_cli(["duplicates", "-n", "job", "-d", hashed, "--min-size", "2KB"])

        assert code == ExitCode.OK
        assert "No duplicate files found" in capsys.readouterr().out

    def test_status(self, hashed, capsys):
        code = run_cli(["status", "-n", "job", "-d", hashed])

        out = capsys.readouterr().out
        assert code == ExitCode.OK
        assert out.count("✅ Complete") == 2

    def test_quick_compare(self, source_tree, dest_tree, capsys):
        (dest_tree / "b.bin").unlink()

        code = run_cli(["quick-compare", str(source_tree["root"]), str(dest_tree)])

        out = capsys.readouterr().out
        assert code == ExitCode.FAILED
        assert "   - b.bin" in out
        assert "❌ QUICK COMPARE FAILED" in out
