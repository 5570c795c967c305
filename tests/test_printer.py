import io

import pytest

from httpbench import persistence
from httpbench.config import RunPolicy
from httpbench.printer import (
    CompositePrinter,
    DiffPrinter,
    FilePrinter,
    StatisticsPrinter,
    display_duration,
    format_size,
    format_size_signed,
)
from httpbench.records import RunResult

SEPARATOR = "-" * 59


def summarize(result):
    console = io.StringIO()
    StatisticsPrinter(console, width=59).summarize(result)
    return console.getvalue()


class TestFormatting:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (120_000_000_000, (2.0, "m ")),
            (1_500_000_000, (1.5, "s ")),
            (2_000_000, (2.0, "ms")),
            (3_000, (3.0, "us")),
            (999, (999.0, "ns")),
            (-2_000_000, (-2.0, "ms")),
        ],
    )
    def test_display_duration(self, value, expected):
        assert display_duration(value) == expected

    def test_format_size(self):
        assert format_size(1.0) == ("1.000", " ")
        assert format_size(2048) == ("2.000", "K")
        assert format_size(3 * 1024**2) == ("3.000", "M")

    def test_format_size_signed(self):
        assert format_size_signed(0) == ("   0", " ")
        assert format_size_signed(-2048) == ("-2.000", "K")
        assert format_size_signed(512) == ("+512.000", " ")


class TestStatisticsPrinter:
    def test_single_measurement(self, result_factory):
        output = summarize(result_factory([1]))

        assert output == (
            "RequestCount: 1, Clients: 1, Connections: 1\n"
            "| Mean:            1.000 s    |\n"
            "| StdDev:          0.000 ns   |\n"
            "| Error:           0.000 ns   |\n"
            "| Median:          1.000 s    |\n"
            "| Min:             1.000 s    |\n"
            "| Max:             1.000 s    |\n"
            "| 95th:            1.000 s    |\n"
            "| Throughput:      1.000  B/s |\n"
            "| Req/Sec:             1      |\n"
            f"{SEPARATOR}\n"
            "HTTP status codes:\n"
            "1xx: 0, 2xx: 1, 3xx: 0, 4xx: 0, 5xx: 0, Other: 0\n"
            f"{SEPARATOR}\n"
        )

    def test_three_measurements(self, result_factory):
        output = summarize(result_factory([1, 2, 3], max_connections=10))

        assert output.splitlines()[:10] == [
            "RequestCount: 3, Clients: 1, Connections: 10",
            "| Mean:            2.000 s    |",
            "| StdDev:        816.497 ms   |",
            "| Error:         471.405 ms   |",
            "| Median:          2.000 s    |",
            "| Min:             1.000 s    |",
            "| Max:             3.000 s    |",
            "| 95th:            2.000 s    |",
            "| Throughput:      0.333  B/s |",
            "| Req/Sec:             1      |",
        ]

    def test_no_measurements(self):
        output = summarize(RunResult([], 0, 0, RunPolicy()))
        assert output == "No measurements available\n"

    def test_failures_reported_as_other(self, result_factory):
        result = result_factory([1])
        result.failures = {"timeout": 4}
        assert "1xx: 0, 2xx: 1, 3xx: 0, 4xx: 0, 5xx: 0, Other: 4" in summarize(result)

    @pytest.mark.parametrize("count", [4, 99])
    def test_no_histogram_below_hundred(self, result_factory, count):
        output = summarize(result_factory([0.001 * (i + 1) for i in range(count)]))
        assert output.count(SEPARATOR) == 2

    def test_histogram_from_hundred(self, result_factory):
        output = summarize(result_factory([0.001 * (i + 1) for i in range(100)]))
        lines = output.splitlines()

        assert output.count(SEPARATOR) == 3
        first, second = lines.index(SEPARATOR), lines.index(SEPARATOR, lines.index(SEPARATOR) + 1)
        histogram_lines = lines[first + 1 : second]
        assert len(histogram_lines) == 10
        assert all(line.split()[1] == "ms" for line in histogram_lines)
        assert sum(line.count("#") for line in histogram_lines) == pytest.approx(59, abs=5)


class TestDiffPrinter:
    def test_self_diff(self, result_factory):
        result = result_factory([1])
        console = io.StringIO()

        DiffPrinter(console, width=59).compare(result, result)

        lines = console.getvalue().splitlines()
        assert lines[0] == "RequestCount: 1, Clients: 1"
        assert lines[1] == "| Mean:            1.000 s    " + " " * 9 + "0 ns   |"
        assert lines[8] == "| Throughput:      1.000  B/s " + " " * 6 + "   0  B/s |"
        assert lines[9] == "| Req/Sec:             1       " + " " * 8 + "0      |"
        assert "1xx: 0 +0, 2xx: 1 +0, 3xx: 0 +0, 4xx: 0 +0, 5xx: 0 +0, Other: 0 +0" in lines
        assert not any(line.startswith("*Warning") for line in lines)

    def test_signed_changes(self, result_factory):
        console = io.StringIO()
        DiffPrinter(console, width=59).compare(result_factory([1]), result_factory([2]))

        lines = console.getvalue().splitlines()
        assert lines[1] == "| Mean:            1.000 s    " + "    +1.000 s    |"
        assert lines[9].startswith("| Req/Sec:             1       ")
        assert "-0.5" in lines[9]

    def test_warnings(self, result_factory):
        console = io.StringIO()
        DiffPrinter(console, width=59).compare(
            result_factory([1], url="http://a/"), result_factory([1], clients_count=3, url="http://b/")
        )
        output = console.getvalue()

        assert "*Warning: session files use different test parameters: " in output
        assert "*Warning: session files contain different urls: http://a/,http://b/\n" in output
        assert output.endswith(f"{SEPARATOR}\n")

    def test_histogram_marks_both_sessions(self, result_factory):
        console = io.StringIO()
        base = result_factory([0.001 * (i + 1) for i in range(100)])
        other = result_factory([0.002 * (i + 1) for i in range(100)])
        DiffPrinter(console, width=59).compare(base, other)

        output = console.getvalue()
        assert "=" in output
        assert "#" in output
        assert "+" in output

    def test_no_measurements(self, result_factory):
        console = io.StringIO()
        result = DiffPrinter(console).compare(RunResult([], 0, 0, RunPolicy()), result_factory([1]))
        assert result is None
        assert console.getvalue() == "No measurements available\n"

    def test_accepts_paths(self, result_factory, tmp_path):
        path = persistence.save(result_factory([1, 2]), tmp_path / "session.json")
        console = io.StringIO()
        assert DiffPrinter(console, width=59).compare(path, path).is_zero()


class TestFileAndCompositePrinter:
    def test_file_printer_saves(self, result_factory, tmp_path):
        result = result_factory([1])
        FilePrinter(tmp_path / "out.json").summarize(result)
        assert persistence.load(tmp_path / "out.json") == result

    def test_composite_calls_every_printer(self, result_factory, tmp_path):
        result = result_factory([1])
        console = io.StringIO()

        CompositePrinter(StatisticsPrinter(console, width=59), FilePrinter(tmp_path / "out.json")).summarize(result)

        assert console.getvalue() == summarize(result)
        assert (tmp_path / "out.json").exists()

    def test_composite_needs_a_printer(self):
        with pytest.raises(ValueError):
            CompositePrinter()
