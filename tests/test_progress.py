"""
Unit tests for ProgressAggregator and LiveMatchCounter.
Progress is read back from the durable logs; the clock is faked.
"""
import pytest

from diskproof.core.hasher import DigestProvider, Sha256AlgorithmImpl
from diskproof.core.models import ManifestEntry, Side
from diskproof.core.progress import LiveMatchCounter, ProgressAggregator
from diskproof.core.scanner import Enumeration
from diskproof.core.scheduler import ActivityBoard, HashScheduler
from diskproof.core.store import ManifestPaths, ManifestStore


class FakeSource:
    """Stands in for a HashPipeline: only the attributes progress reads."""

    def __init__(self, paths: ManifestPaths, total_files=None, total_bytes=None, label="SOURCE"):
        self.paths = paths
        self.total_files = total_files
        self.total_bytes = total_bytes
        self.label = label
        self.activity = ActivityBoard()
        self.ready = True
        self.finished = False


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def append_rows(paths: ManifestPaths, rows):
    with open(paths.state, "a") as state, open(paths.ledger, "a") as ledger:
        for path, size in rows:
            ledger.write(f"{size}\n")
            state.write(f"{path}\n")


@pytest.fixture
def source(temp_dir) -> FakeSource:
    paths = ManifestPaths.for_side(str(temp_dir), "job", Side.SOURCE)
    open(paths.state, "w").close()
    open(paths.ledger, "w").close()
    return FakeSource(paths, total_files=10, total_bytes=10000)


class TestProgressAggregator:
    """Test counters, throughput and ETA."""

    def test_counts_come_from_logs(self, source):
        append_rows(source.paths, [("/a", 1000), ("/b", 500)])
        aggregator = ProgressAggregator([source], clock=FakeClock())

        snapshot = aggregator.sample()[0]

        assert snapshot.files_done == 2
        assert snapshot.bytes_done == 1500
        assert snapshot.percent == pytest.approx(15.0)
        assert snapshot.label == "SOURCE"

    def test_throughput_and_eta(self, source):
        clock = FakeClock()
        aggregator = ProgressAggregator([source], interval=5.0, clock=clock)
        aggregator.sample()

        append_rows(source.paths, [("/a", 2000)])
        clock.now += 5.0
        snapshot = aggregator.sample()[0]

        assert snapshot.throughput_bps == pytest.approx(400.0)
        assert snapshot.files_per_second == pytest.approx(0.2)
        assert snapshot.eta_seconds == pytest.approx(8000 / 400.0)
        assert snapshot.elapsed == pytest.approx(5.0)

    def test_throughput_is_rolling_average(self, source):
        clock = FakeClock()
        aggregator = ProgressAggregator([source], interval=1.0, window=2, clock=clock)
        aggregator.sample()

        for size in (100, 300, 500):
            append_rows(source.paths, [("/f", size)])
            clock.now += 1.0
            snapshot = aggregator.sample()[0]

        # Only the last two intervals count
        assert snapshot.throughput_bps == pytest.approx(400.0)

    def test_file_ratio_without_total_bytes(self, source):
        source.total_bytes = None
        append_rows(source.paths, [("/a", 1), ("/b", 1), ("/c", 1)])
        aggregator = ProgressAggregator([source], clock=FakeClock())

        snapshot = aggregator.sample()[0]

        assert snapshot.percent == pytest.approx(30.0)

    def test_unknown_totals_have_no_percent_or_eta(self, source):
        source.total_files = None
        source.total_bytes = None
        aggregator = ProgressAggregator([source], clock=FakeClock())

        snapshot = aggregator.sample()[0]

        assert snapshot.percent is None
        assert snapshot.eta_seconds is None

    def test_current_files_are_reported(self, source):
        source.activity.begin("/big.mov", 5000)
        aggregator = ProgressAggregator([source], clock=FakeClock())

        assert aggregator.sample()[0].current == [(5000, "/big.mov")]

    def test_run_renders_until_finished(self, source):
        clock = FakeClock()
        aggregator = ProgressAggregator([source], interval=1.0, clock=clock)
        renders = []

        def fake_sleep(seconds):
            clock.now += seconds
            if clock.now >= 103.0:
                source.finished = True

        final = aggregator.run(lambda snaps, matches: renders.append(snaps), sleep=fake_sleep)

        assert len(renders) >= 2
        assert final[0].running is False
        assert renders[-1] is final

    def test_invalid_interval(self, source):
        with pytest.raises(ValueError):
            ProgressAggregator([source], interval=0)


class TestLogRepair:
    """Logs truncated by crash repair must not be counted twice."""

    @staticmethod
    def crashed_logs(paths: ManifestPaths):
        with ManifestStore.open(paths) as store:
            store.record(ManifestEntry(1000, "aa" * 32, "/src/a"))
            store.record(ManifestEntry(500, "bb" * 32, "/src/b"))
        # Died between the ledger append and the state append
        with open(paths.ledger, "a") as f:
            f.write("700\n")

    def test_source_is_not_read_before_its_store_opens(self, source):
        self.crashed_logs(source.paths)
        source.ready = False
        clock = FakeClock()
        aggregator = ProgressAggregator([source], clock=clock)

        assert aggregator.sample()[0].files_done == 0

        ManifestStore.open(source.paths).close()
        source.ready = True
        clock.now += 5.0
        snapshot = aggregator.sample()[0]

        assert snapshot.files_done == 2
        assert snapshot.bytes_done == 1500
        # Work from earlier runs is not throughput
        assert snapshot.throughput_bps is None

    def test_shrunk_ledger_is_counted_again(self, source):
        self.crashed_logs(source.paths)
        clock = FakeClock()
        aggregator = ProgressAggregator([source], clock=clock)
        assert aggregator.sample()[0].bytes_done == 2200

        ManifestStore.open(source.paths).close()
        clock.now += 5.0
        snapshot = aggregator.sample()[0]

        assert snapshot.files_done == 2
        assert snapshot.bytes_done == 1500
        assert snapshot.throughput_bps is None

        append_rows(source.paths, [("/src/c", 400)])
        clock.now += 5.0
        snapshot = aggregator.sample()[0]

        assert snapshot.bytes_done == 1900
        assert snapshot.throughput_bps == pytest.approx(80.0)


class TestStalledPrefix:
    """A failed file holds back the state log but not the manifest."""

    def test_hashed_files_keep_counting_past_a_failed_file(self, temp_dir, source):
        root = temp_dir / "tree"
        root.mkdir()
        for name in ("b", "c", "d"):
            (root / name).write_bytes(name.encode() * 10)
        enumeration = Enumeration(
            root=str(root),
            paths=[str(root / name) for name in ("a", "b", "c", "d")],
            sizes=[10, 10, 10, 10],
        )
        aggregator = ProgressAggregator([source], clock=FakeClock())
        assert aggregator.sample()[0].hashed_files == 0

        with ManifestStore.open(source.paths) as store:
            HashScheduler(store, DigestProvider(Sha256AlgorithmImpl()), workers=1).run(enumeration, 0)
        snapshot = aggregator.sample()[0]

        assert snapshot.files_done == 0
        assert snapshot.bytes_done == 0
        assert snapshot.hashed_files == 3
        assert snapshot.hashed_bytes == 30
        assert snapshot.awaiting_commit == 3


class TestLiveMatchCounter:
    """Test the incremental intersection of two growing manifests."""

    def test_counts_digests_present_on_both_sides(self, temp_dir):
        src = temp_dir / "src.txt"
        dst = temp_dir / "dst.txt"
        src.write_text("%%%% HASHDEEP-1.0\n%%%% size,sha256,filename\n##\n1,aa,/s/a\n2,bb,/s/b\n")
        dst.write_text("%%%% HASHDEEP-1.0\n%%%% size,sha256,filename\n##\n1,aa,/d/a\n")
        counter = LiveMatchCounter(str(src), str(dst))

        status = counter.poll()
        assert status.matches == 1
        assert status.pending == 1

        with open(dst, "a") as f:
            f.write("2,bb,/d/b\n2,bb,/d/b_copy\n")
        status = counter.poll()

        assert status.matches == 2
        assert status.pending == 0
        assert status.dest_digests == 2

    def test_missing_manifests_are_empty(self, temp_dir):
        counter = LiveMatchCounter(str(temp_dir / "none1"), str(temp_dir / "none2"))
        status = counter.poll()
        assert status.matches == 0
        assert status.source_digests == 0
