"""
Console and file output for run results and session diffs.

Durations are shown in the largest unit that keeps the value >= 1 (minutes,
seconds, milliseconds, microseconds, nanoseconds), sizes in 1024 steps.
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import Protocol, TextIO

from . import persistence
from .errors import NoMeasurementsError
from .records import RunResult
from .stats import (
    STATUS_LABELS,
    ResultSource,
    Stats,
    StatsDiff,
    compare,
    compute_stats,
    histogram,
    histogram_buckets,
)

NO_MEASUREMENTS = "No measurements available"

_DURATION_UNITS: tuple[tuple[float, str], ...] = (
    (60_000_000_000, "m "),
    (1_000_000_000, "s "),
    (1_000_000, "ms"),
    (1_000, "us"),
)

_SIZE_UNITS: tuple[tuple[float, str], ...] = (
    (1024.0**4, "T"),
    (1024.0**3, "G"),
    (1024.0**2, "M"),
    (1024.0, "K"),
)


def display_duration(value_ns: float) -> tuple[float, str]:
    """Scale a nanosecond value for display; returns (value, two-character unit)."""
    magnitude = abs(value_ns)
    for unit, qualifier in _DURATION_UNITS:
        if magnitude >= unit:
            return value_ns / unit, qualifier
    return float(value_ns), "ns"


def _signed(value: float, decimals: int = 3, trim: bool = False) -> str:
    if value == 0:
        return "0"
    text = f"{value:+.{decimals}f}"
    if trim:
        text = text.rstrip("0").rstrip(".")
    return text


def format_size(value: float) -> tuple[str, str]:
    for unit, qualifier in _SIZE_UNITS:
        if value >= unit:
            return f"{value / unit:>4.3f}", qualifier
    return f"{value:>4.3f}", " "


def format_size_signed(value: float) -> tuple[str, str]:
    magnitude = abs(value)
    for unit, qualifier in _SIZE_UNITS:
        if magnitude >= unit:
            return f"{_signed(value / unit):>4}", qualifier
    return f"{_signed(value):>4}", " "


def _console_width(width: int | None) -> int:
    if width is not None:
        return width
    return shutil.get_terminal_size((80, 24)).columns


class SummaryPrinter(Protocol):
    def summarize(self, result: RunResult) -> None: ...


class StatisticsPrinter:
    """Writes the statistics table, latency histogram and status codes of one run."""

    def __init__(self, console: TextIO | None = None, width: int | None = None) -> None:
        self._console = console or sys.stdout
        self._width = _console_width(width)

    def summarize(self, result: RunResult) -> None:
        try:
            stats = compute_stats(result)
        except NoMeasurementsError:
            self._write(NO_MEASUREMENTS)
            return
        self.print_stats(result, stats)

    def print_stats(self, result: RunResult, stats: Stats) -> None:
        behavior = result.behavior
        self._write(
            f"RequestCount: {behavior.request_count}, Clients: {behavior.clients_count}, "
            f"Connections: {result.max_connections}"
        )
        for name, value in (
            ("Mean:", stats.mean_ns),
            ("StdDev:", stats.std_dev_ns),
            ("Error:", stats.error_ns),
            ("Median:", stats.median_ns),
            ("Min:", stats.min_ns),
            ("Max:", stats.max_ns),
            ("95th:", stats.percentile95_ns),
        ):
            shown, qualifier = display_duration(value)
            self._write(f"| {name:<12}{shown:>10.3f} {qualifier}   |")
        throughput, qualifier = format_size(stats.bytes_per_sec)
        self._write(f"| {'Throughput:':<12}{throughput:>10} {qualifier}B/s |")
        self._write(f"| {'Req/Sec:':<12}{stats.requests_per_sec:>10.3g}      |")

        separator = "-" * self._width
        if stats.count >= 100:
            self._write(separator)
            self._print_histogram(stats)
        self._write(separator)
        self._write("HTTP status codes:")
        self._write(", ".join(f"{label}: {count}" for label, count in _status_pairs(stats.status_codes)))
        self._write(separator)

    def _print_histogram(self, stats: Stats) -> None:
        scale = self._width / stats.count
        bucket_count, bucket_size = histogram_buckets(stats.min_ns, stats.max_ns, stats.error_ns)
        for limit, count in histogram(stats.durations_ns, stats.min_ns, bucket_count, bucket_size):
            shown, qualifier = display_duration(limit)
            self._write(f"{shown:>10.3f} {qualifier} " + "#" * round(scale * count))

    def _write(self, line: str) -> None:
        self._console.write(line + "\n")


class DiffPrinter:
    """Writes a base run's statistics next to the change measured by another run."""

    def __init__(self, console: TextIO | None = None, width: int | None = None) -> None:
        self._console = console or sys.stdout
        self._width = _console_width(width)

    def compare(self, base: ResultSource, other: ResultSource) -> StatsDiff | None:
        try:
            result = compare(base, other)
        except NoMeasurementsError:
            self._write(NO_MEASUREMENTS)
            return None
        self.print_diff(result)
        return result

    def print_diff(self, result: StatsDiff) -> None:
        behavior = result.base_result.behavior
        self._write(f"RequestCount: {behavior.request_count}, Clients: {behavior.clients_count}")
        for name, field in (
            ("Mean:", "mean_ns"),
            ("StdDev:", "std_dev_ns"),
            ("Error:", "error_ns"),
            ("Median:", "median_ns"),
            ("Min:", "min_ns"),
            ("Max:", "max_ns"),
            ("95th:", "percentile95_ns"),
        ):
            delta = result.deltas[field]
            shown, qualifier = display_duration(delta.base)
            change, change_qualifier = display_duration(delta.absolute)
            self._write(
                f"| {name:<12}{shown:>10.3f} {qualifier}   {_signed(change):>10} {change_qualifier}   |"
            )

        throughput = result.deltas["bytes_per_sec"]
        base_size, base_qualifier = format_size(throughput.base)
        change_size, change_qualifier = format_size_signed(throughput.absolute)
        self._write(
            f"| {'Throughput:':<12}{base_size:>10} {base_qualifier}B/s "
            f"{change_size:>10} {change_qualifier}B/s |"
        )
        requests = result.deltas["requests_per_sec"]
        self._write(
            f"| {'Req/Sec:':<12}{requests.base:>10.3g}       "
            f"{_signed(requests.absolute, trim=True):>9}      |"
        )

        separator = "-" * self._width
        if result.base.count >= 100 and result.other.count >= 100:
            self._write(separator)
            self._print_histogram(result)
        self._write(separator)
        self._write("HTTP status codes:")
        pairs = zip(_status_pairs(result.base.status_codes), result.status_deltas)
        self._write(", ".join(f"{label}: {count} {delta:+d}" for (label, count), delta in pairs))
        self._write(separator)

        for warning in result.warnings:
            self._write(f"*Warning: {warning}")
        if result.warnings:
            self._write(separator)

    def _print_histogram(self, result: StatsDiff) -> None:
        base, other = result.base, result.other
        minimum = min(base.min_ns, other.min_ns)
        maximum = max(base.max_ns, other.max_ns)
        bucket_count, bucket_size = histogram_buckets(minimum, maximum, min(base.error_ns, other.error_ns))
        scale = self._width / (base.count + other.count)
        base_counts = histogram(base.durations_ns, minimum, bucket_count, bucket_size)
        other_counts = histogram(other.durations_ns, minimum, bucket_count, bucket_size)
        for (limit, base_count), (_, other_count) in zip(base_counts, other_counts):
            shown, qualifier = display_duration(limit)
            before = round(scale * base_count)
            after = round(scale * other_count)
            # '=' is shared, '#' only in the base run, '+' only in the other run
            if before > after:
                bar = "=" * after + "#" * (before - after)
            else:
                bar = "=" * before + "+" * (after - before)
            self._write(f"{shown:>10.3f} {qualifier} {bar}")

    def _write(self, line: str) -> None:
        self._console.write(line + "\n")


class FilePrinter:
    """Persists every summarized result to ``path``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def summarize(self, result: RunResult) -> None:
        persistence.save(result, self.path)


class CompositePrinter:
    def __init__(self, *printers: SummaryPrinter) -> None:
        if not printers:
            raise ValueError("CompositePrinter needs at least one printer")
        self._printers = printers

    def summarize(self, result: RunResult) -> None:
        for printer in self._printers:
            printer.summarize(result)


def _status_pairs(status_codes: tuple[int, ...]) -> list[tuple[str, int]]:
    return list(zip(STATUS_LABELS, status_codes))


__all__ = [
    "NO_MEASUREMENTS",
    "display_duration",
    "format_size",
    "format_size_signed",
    "StatisticsPrinter",
    "DiffPrinter",
    "FilePrinter",
    "CompositePrinter",
]
