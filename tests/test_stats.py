import pytest

from httpbench import persistence
from httpbench.config import RunPolicy
from httpbench.errors import NoMeasurementsError
from httpbench.records import OutcomeRecord, RunResult
from httpbench.stats import compare, compute_stats, diff, histogram, histogram_buckets


class TestComputeStats:
    def test_three_measurements(self, result_factory):
        stats = compute_stats(result_factory([1, 2, 3], total_bytes_read=3))

        assert stats.count == 3
        assert stats.mean_ns == 2_000_000_000
        assert stats.std_dev_ns == pytest.approx(816_496_580.9, rel=1e-9)
        assert stats.error_ns == pytest.approx(471_404_520.8, rel=1e-9)
        assert stats.median_ns == 2_000_000_000
        assert stats.min_ns == 1_000_000_000
        assert stats.max_ns == 3_000_000_000
        assert stats.percentile95_ns == 2_000_000_000
        # span is three seconds: all records start together, the longest lasts 3s
        assert stats.requests_per_sec == pytest.approx(1.0)
        assert stats.bytes_per_sec == pytest.approx(1.0)

    def test_status_buckets(self):
        records = []
        for code in (101, 200, 204, 301, 404, 500, 503, 799):
            record = OutcomeRecord("url", start_ns=1)
            record.close(code, end_ns=10)
            records.append(record)
        result = RunResult(records, 0, 1, RunPolicy(), failures={"timeout": 2})

        assert compute_stats(result).status_codes == (1, 2, 1, 1, 2, 3)

    def test_empty_result(self):
        with pytest.raises(NoMeasurementsError):
            compute_stats(RunResult([], 0, 0, RunPolicy()))

    def test_failures_do_not_count_as_completions(self, result_factory):
        result = result_factory([1, 1])
        result.failures = {"timeout": 5}
        stats = compute_stats(result)
        assert stats.count == 2
        assert stats.requests_per_sec == pytest.approx(2.0)


class TestHistogram:
    def test_bucket_limits(self):
        assert histogram_buckets(0, 100, 5) == (10, 10.0)
        assert histogram_buckets(0, 100, 50) == (5, 20.0)
        # zero error falls back to one
        assert histogram_buckets(0, 8, 0) == (8, 1.0)

    def test_counts_cover_every_duration(self):
        durations = tuple(range(1, 101))
        bucket_count, bucket_size = histogram_buckets(1, 100, 2.9)
        buckets = histogram(durations, 1, bucket_count, bucket_size)

        assert len(buckets) == bucket_count
        assert sum(count for _, count in buckets) == 100
        assert buckets[-1][0] == pytest.approx(100)


class TestDiff:
    def test_self_diff_is_zero(self, result_factory):
        result = result_factory([1, 2, 3])
        result_diff = diff(result, result)

        assert result_diff.is_zero()
        assert not result_diff.warnings
        assert all(delta.absolute == 0 for delta in result_diff.deltas.values())

    def test_deltas_are_other_minus_base(self, result_factory):
        result_diff = diff(result_factory([1, 1]), result_factory([2, 2]))

        mean = result_diff.deltas["mean_ns"]
        assert mean.absolute == 1_000_000_000
        assert mean.relative == pytest.approx(1.0)
        assert not result_diff.is_zero()

    def test_warnings(self, result_factory):
        base = result_factory([1], clients_count=1, url="http://a/")
        other = result_factory([1], clients_count=2, url="http://b/")

        warnings = diff(base, other).warnings

        assert warnings[0].startswith("session files use different test parameters")
        assert warnings[1] == "session files contain different urls: http://a/,http://b/"

    def test_combined_records_are_tagged(self, result_factory):
        records = diff(result_factory([1, 2]), result_factory([3])).records
        assert records["session"].tolist() == [0, 0, 1]

    def test_status_deltas(self, result_factory):
        result_diff = diff(result_factory([1]), result_factory([1, 1], status_code=500))
        assert result_diff.status_deltas == (0, -1, 0, 0, 2, 0)

    def test_entry_forms_agree(self, result_factory, tmp_path):
        base = result_factory([1, 2, 3])
        other = result_factory([2, 2, 2])
        base_path = persistence.save(base, tmp_path / "base.json")
        other_path = persistence.save(other, tmp_path / "other.json")

        in_memory = compare(base, other)
        from_files = compare(base_path, other_path)
        mixed = compare(base, str(other_path))

        assert in_memory.deltas == from_files.deltas == mixed.deltas
        assert in_memory.status_deltas == from_files.status_deltas == mixed.status_deltas
        assert in_memory.warnings == from_files.warnings == mixed.warnings
