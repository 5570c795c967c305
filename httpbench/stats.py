"""
Descriptive statistics over a run's outcome records and session-to-session deltas.

Durations are integer nanoseconds, so statistics recomputed from a persisted
session are identical to the ones computed right after the run.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from .errors import NoMeasurementsError
from .persistence import load
from .records import RunResult

NS_PER_SECOND = 1_000_000_000

STATUS_LABELS: tuple[str, ...] = ("1xx", "2xx", "3xx", "4xx", "5xx", "Other")

DELTA_FIELDS: tuple[str, ...] = (
    "count",
    "mean_ns",
    "std_dev_ns",
    "error_ns",
    "median_ns",
    "min_ns",
    "max_ns",
    "percentile95_ns",
    "requests_per_sec",
    "bytes_per_sec",
)

ResultSource = Union[RunResult, str, Path]


@dataclass(frozen=True)
class Stats:
    count: int
    mean_ns: float
    std_dev_ns: float
    error_ns: float
    median_ns: int
    min_ns: int
    max_ns: int
    percentile95_ns: int
    requests_per_sec: float
    bytes_per_sec: float
    span_ns: int
    status_codes: tuple[int, ...]
    durations_ns: tuple[int, ...]


def _status_buckets(status_codes: pd.Series, failed: int) -> tuple[int, ...]:
    codes = pd.to_numeric(status_codes, errors="coerce")
    buckets = [0] * len(STATUS_LABELS)
    known = codes[(codes >= 100) & (codes < 600)]
    for bucket, count in (known // 100).astype(int).value_counts().items():
        buckets[bucket - 1] = int(count)
    buckets[-1] = int(len(codes) - len(known)) + failed
    return tuple(buckets)


def compute_stats(result: RunResult) -> Stats:
    frame = result.to_dataframe()
    if frame.empty:
        raise NoMeasurementsError("No measurements available")

    durations = np.sort(frame["duration_ns"].to_numpy(dtype=np.int64))
    count = len(durations)
    mean = float(durations.mean())
    std_dev = float(np.sqrt(np.mean((durations - mean) ** 2)))
    span = int(frame["end_ns"].max()) - int(frame["start_ns"].min())
    requests_per_sec = count * NS_PER_SECOND / span if span > 0 else 0.0
    bytes_per_sec = result.total_bytes_read * NS_PER_SECOND / span if span > 0 else 0.0

    return Stats(
        count=count,
        mean_ns=mean,
        std_dev_ns=std_dev,
        error_ns=std_dev / math.sqrt(count),
        median_ns=int(durations[count // 2]),
        min_ns=int(durations[0]),
        max_ns=int(durations[-1]),
        percentile95_ns=int(durations[int((count - 1) * 0.95)]),
        requests_per_sec=requests_per_sec,
        bytes_per_sec=bytes_per_sec,
        span_ns=span,
        status_codes=_status_buckets(frame["status_code"], result.failed),
        durations_ns=tuple(int(value) for value in durations),
    )


def histogram_buckets(minimum: float, maximum: float, error: float) -> tuple[int, float]:
    """Return the number of buckets and the bucket width for a latency histogram."""
    error = error or 1.0
    bucket_count = max(min(10.0, (maximum - minimum) / error), 5.0)
    return int(math.ceil(bucket_count)), (maximum - minimum) / bucket_count


def histogram(durations: tuple[int, ...], minimum: float, bucket_count: int, bucket_size: float) -> list[tuple[float, int]]:
    """Count durations per bucket; each entry is (upper limit, count)."""
    values = np.asarray(durations, dtype=np.float64)
    limits = minimum + bucket_size * np.arange(1, bucket_count + 1)
    cumulative = np.searchsorted(values, limits, side="right")
    counts = np.diff(np.concatenate(([0], cumulative)))
    # float rounding can leave the maximum just above the last limit
    counts[-1] += len(values) - int(cumulative[-1])
    return [(float(limit), int(count)) for limit, count in zip(limits, counts)]


@dataclass(frozen=True)
class StatDelta:
    name: str
    base: float
    other: float
    absolute: float
    relative: float


@dataclass
class StatsDiff:
    """Comparison of a base session with another one (deltas are other - base)."""

    base_result: RunResult
    other_result: RunResult
    base: Stats
    other: Stats
    deltas: dict[str, StatDelta]
    status_deltas: tuple[int, ...]
    warnings: list[str]
    records: pd.DataFrame

    def is_zero(self) -> bool:
        return all(d.absolute == 0 and d.relative == 0 for d in self.deltas.values()) and not any(
            self.status_deltas
        )


def _delta(name: str, base: float, other: float) -> StatDelta:
    absolute = other - base
    relative = absolute / base if base else 0.0
    return StatDelta(name=name, base=base, other=other, absolute=absolute, relative=relative)


def diff(base_result: RunResult, other_result: RunResult) -> StatsDiff:
    base = compute_stats(base_result)
    other = compute_stats(other_result)

    deltas = {name: _delta(name, getattr(base, name), getattr(other, name)) for name in DELTA_FIELDS}
    status_deltas = tuple(b - a for a, b in zip(base.status_codes, other.status_codes))

    warnings: list[str] = []
    if base_result.behavior != other_result.behavior:
        warnings.append(
            "session files use different test parameters: "
            f"{base_result.behavior} and {other_result.behavior}"
        )
    urls = sorted(set(base_result.urls()) | set(other_result.urls()))
    if len(urls) > 1:
        warnings.append(f"session files contain different urls: {','.join(urls)}")

    base_frame = base_result.to_dataframe().assign(session=0)
    other_frame = other_result.to_dataframe().assign(session=1)
    records = pd.concat([base_frame, other_frame], ignore_index=True)

    return StatsDiff(
        base_result=base_result,
        other_result=other_result,
        base=base,
        other=other,
        deltas=deltas,
        status_deltas=status_deltas,
        warnings=warnings,
        records=records,
    )


def resolve(source: ResultSource) -> RunResult:
    if isinstance(source, RunResult):
        return source
    return load(source)


def compare(base: ResultSource, other: ResultSource) -> StatsDiff:
    """Diff two sessions given in memory, as persisted files, or one of each."""
    return diff(resolve(base), resolve(other))


__all__ = [
    "NS_PER_SECOND",
    "STATUS_LABELS",
    "DELTA_FIELDS",
    "Stats",
    "StatDelta",
    "StatsDiff",
    "compute_stats",
    "histogram_buckets",
    "histogram",
    "diff",
    "compare",
    "resolve",
]
