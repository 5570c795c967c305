from __future__ import annotations

import collections
import time
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from .config import RunPolicy
from .errors import MeasurementStateError

FAILURE_KINDS: tuple[str, ...] = ("timeout", "transport", "protocol")

RECORD_COLUMNS = ["url", "start_ns", "end_ns", "duration_ns", "status_code", "length"]


@dataclass
class OutcomeRecord:
    """Timing and status of one request attempt.

    A record is open while ``end_ns`` is 0 and is closed exactly once.
    """

    url: str
    start_ns: int = field(default_factory=time.perf_counter_ns)
    end_ns: int = 0
    status_code: int | None = None
    length: int = 0

    @property
    def is_open(self) -> bool:
        return self.end_ns == 0

    @property
    def duration_ns(self) -> int:
        if self.is_open:
            return 0
        return self.end_ns - self.start_ns

    def close(self, status_code: int, length: int = 0, end_ns: int | None = None) -> None:
        if not self.is_open:
            raise MeasurementStateError(f"record for {self.url!r} is already closed")
        if end_ns is None:
            # perf_counter_ns can return the start value for very fast calls
            end_ns = max(time.perf_counter_ns(), self.start_ns + 1)
        elif end_ns <= self.start_ns:
            raise ValueError("end_ns must be after start_ns")
        self.end_ns = end_ns
        self.status_code = status_code
        self.length = length

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "start_ns": self.start_ns,
            "end_ns": self.end_ns,
            "status_code": self.status_code,
            "length": self.length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutcomeRecord":
        status = data.get("status_code")
        return cls(
            url=str(data["url"]),
            start_ns=int(data["start_ns"]),
            end_ns=int(data["end_ns"]),
            status_code=None if status is None else int(status),
            length=int(data.get("length", 0)),
        )


class RecordLog:
    """Owns the outcome records of one worker or one measurement session."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._records: list[OutcomeRecord] = []
        self._open: OutcomeRecord | None = None
        self._measured_from = 0
        self._completed = False
        self.failures: collections.Counter[str] = collections.Counter()

    @property
    def records(self) -> list[OutcomeRecord]:
        return list(self._records)

    @property
    def open_record(self) -> OutcomeRecord | None:
        return self._open

    def open(self, url: str | None = None) -> OutcomeRecord:
        if self._completed:
            raise MeasurementStateError("record log is already completed")
        if self._open is not None:
            raise MeasurementStateError("current record is not completed")
        record = OutcomeRecord(url or self._url)
        self._open = record
        return record

    def close(self, record: OutcomeRecord, status_code: int, length: int = 0) -> OutcomeRecord:
        if record is not self._open:
            raise MeasurementStateError("record is not the open record of this log")
        record.close(status_code, length)
        self._records.append(record)
        self._open = None
        return record

    def discard(self, record: OutcomeRecord, kind: str) -> None:
        if record is not self._open:
            raise MeasurementStateError("record is not the open record of this log")
        if kind not in FAILURE_KINDS:
            raise ValueError(f"unknown failure kind {kind!r}")
        self.failures[kind] += 1
        self._open = None

    def mark_measurement_start(self) -> None:
        """Exclude everything recorded so far (the warm-up) from ``measured``."""
        self._measured_from = len(self._records)
        self.failures.clear()

    def complete(self) -> None:
        if self._open is not None:
            raise MeasurementStateError("cannot complete a log with an open record")
        self._completed = True

    def measured(self) -> list[OutcomeRecord]:
        return self._records[self._measured_from:]


@dataclass
class RunResult:
    """Everything one load run produced: records, telemetry totals and policy."""

    summaries: list[OutcomeRecord]
    total_bytes_read: int
    max_connections: int
    behavior: RunPolicy
    failures: dict[str, int] = field(default_factory=dict)

    @property
    def completed(self) -> int:
        return len(self.summaries)

    @property
    def failed(self) -> int:
        return sum(self.failures.values())

    def urls(self) -> list[str]:
        return sorted({record.url for record in self.summaries})

    def to_dataframe(self) -> pd.DataFrame:
        if not self.summaries:
            return pd.DataFrame(columns=RECORD_COLUMNS)
        rows = []
        for record in self.summaries:
            row = record.to_dict()
            row["duration_ns"] = record.duration_ns
            rows.append(row)
        return pd.DataFrame(rows, columns=RECORD_COLUMNS)


__all__ = [
    "FAILURE_KINDS",
    "RECORD_COLUMNS",
    "OutcomeRecord",
    "RecordLog",
    "RunResult",
]
