from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

from . import persistence
from .config import RunPolicy
from .printer import DiffPrinter, StatisticsPrinter
from .records import OutcomeRecord, RecordLog, RunResult
from .stats import StatsDiff

LOGGER = logging.getLogger("httpbench.session")


class MeasurementSession:
    """Times arbitrary caller code against ``url`` and reports it like a load run.

    Only one measurement can be open at a time::

        session = MeasurementSession("https://localhost:5001/")
        record = session.start_measurement()
        ...  # the work being measured
        session.end_measurement(record)
        session.print_stats()
    """

    def __init__(self, url: str, console: TextIO | None = None, width: int | None = None) -> None:
        self.url = url
        self._console = console or sys.stdout
        self._width = width
        self._log = RecordLog(url)

    @property
    def records(self) -> list[OutcomeRecord]:
        return self._log.records

    def start_measurement(self) -> OutcomeRecord:
        return self._log.open()

    def end_measurement(self, record: OutcomeRecord, status_code: int = 200) -> OutcomeRecord:
        return self._log.close(record, status_code)

    def result(self) -> RunResult:
        records = self._log.records
        return RunResult(
            summaries=records,
            total_bytes_read=0,
            max_connections=1,
            behavior=RunPolicy(request_count=max(len(records), 1), clients_count=1),
        )

    def print_stats(self) -> None:
        StatisticsPrinter(self._console, self._width).summarize(self.result())

    def save(self, path: str | Path) -> Path:
        return persistence.save(self.result(), path)

    def diff(self, path0: str | Path, path1: str | Path) -> StatsDiff | None:
        LOGGER.debug("Comparing sessions %s and %s", path0, path1)
        return DiffPrinter(self._console, self._width).compare(path0, path1)


__all__ = ["MeasurementSession"]
