from __future__ import annotations

import collections
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, TextIO

import httpx

from .config import RequestSpec, RunPolicy
from .cookies import CookieStore
from .errors import TargetUnreachableError
from .executor import RequestExecutor, create_transport
from .progress import Awaiter, ProgressReporter, Ratio, estimate_remaining
from .records import OutcomeRecord, RecordLog, RunResult
from .telemetry import EventSource, TelemetryTap

LOGGER = logging.getLogger("httpbench.load")


class AtomicCounter:
    """Integer that can only be incremented, safely from several threads."""

    def __init__(self, start: int = 0) -> None:
        self._value = start
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


@dataclass
class SharedCounters:
    """Counters handed to every worker of a run: the next ticket and completions."""

    request_count: int
    tickets: AtomicCounter = field(default_factory=AtomicCounter)
    completed: AtomicCounter = field(default_factory=AtomicCounter)

    def claim_ticket(self) -> int | None:
        ticket = self.tickets.increment()
        if ticket > self.request_count:
            return None
        return ticket

    def mark_completed(self) -> int:
        return self.completed.increment()


@dataclass
class WorkerOutcome:
    records: list[OutcomeRecord]
    failures: collections.Counter[str]
    connected: bool
    connect_failed: bool


def default_thread_floor() -> int:
    # same default as concurrent.futures.ThreadPoolExecutor
    return min(32, (os.cpu_count() or 1) + 4)


class LoadOrchestrator:
    """Runs ``clients_count`` workers against one request until every ticket is used."""

    def __init__(
        self,
        policy: RunPolicy,
        console: TextIO | None = None,
        cookie_store: CookieStore | None = None,
        awaiter: Awaiter | None = None,
        reporter: ProgressReporter | None = None,
        transport_factory: Callable[[RequestSpec, RunPolicy], httpx.BaseTransport] | None = None,
    ) -> None:
        self._policy = policy
        self._transport_factory = transport_factory or create_transport
        self._cookie_store = cookie_store or CookieStore()
        self._reporter = reporter or ProgressReporter(
            console,
            awaiter,
            # None lets the reporter decide from whether the console is a terminal
            enabled=None if policy.logging_level <= logging.INFO else False,
        )
        self._max_workers = max(policy.clients_count, default_thread_floor())
        self._stop_event = threading.Event()
        self._started_at = 0.0

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def cancel(self) -> None:
        """Let every worker finish its in-flight request, then stop claiming tickets.

        The cancellation applies to the current run, or to the next one when no
        run is in progress. The orchestrator is reusable once that run returns.
        """
        self._stop_event.set()

    def run(self, spec: RequestSpec, tap: TelemetryTap | None = None) -> RunResult:
        policy = self._policy
        counters = SharedCounters(policy.request_count)
        tap = tap or TelemetryTap.for_version(spec.version)
        LOGGER.info(
            "Starting load run: %d client(s), %d request(s), %s %s over HTTP/%s",
            policy.clients_count,
            policy.request_count,
            spec.method,
            spec.uri,
            spec.version,
        )

        tap.start()
        self._reporter.start()
        try:
            outcomes = self._run_workers(spec, counters, tap.source)
        except BaseException:
            self._reporter.stop()
            tap.close()
            raise
        finally:
            self._stop_event.clear()

        totals = tap.drain()
        self._complete_progress()

        records: list[OutcomeRecord] = []
        failures: collections.Counter[str] = collections.Counter()
        for outcome in outcomes:
            records.extend(outcome.records)
            failures.update(outcome.failures)

        if not any(o.connected for o in outcomes) and any(o.connect_failed for o in outcomes):
            raise TargetUnreachableError(f"could not establish any connection to {spec.uri}")

        LOGGER.info(
            "Load run finished: %d completed, %d failed, %d bytes read, %d max connections",
            len(records),
            sum(failures.values()),
            totals.bytes_read,
            totals.max_connections,
        )
        return RunResult(
            summaries=records,
            total_bytes_read=totals.bytes_read,
            max_connections=totals.max_connections,
            behavior=policy,
            failures=dict(failures),
        )

    def _run_workers(
        self,
        spec: RequestSpec,
        counters: SharedCounters,
        source: EventSource,
    ) -> list[WorkerOutcome]:
        self._started_at = time.perf_counter()
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="load-worker") as pool:
            futures = [
                pool.submit(self._run_client, spec, counters, source)
                for _ in range(self._policy.clients_count)
            ]
            return [future.result() for future in futures]

    def _run_client(
        self,
        spec: RequestSpec,
        counters: SharedCounters,
        source: EventSource,
    ) -> WorkerOutcome:
        log = RecordLog(spec.uri)
        executor = RequestExecutor(
            spec,
            self._policy,
            cookies=self._cookie_store.load(),
            source=source,
            transport=self._transport_factory(spec, self._policy),
        )
        try:
            # warm up: connection setup and TLS handshake stay out of the measurement
            executor.send(log)
            log.mark_measurement_start()

            while not self._stop_event.is_set() and counters.claim_ticket() is not None:
                executor.send(log)
                self._report_completion(counters.mark_completed())

            log.complete()
            self._cookie_store.save(executor.cookies)
        finally:
            executor.close()

        return WorkerOutcome(
            records=log.measured(),
            failures=collections.Counter(log.failures),
            connected=executor.connected,
            connect_failed=executor.connect_failed,
        )

    def _report_completion(self, completed: int) -> None:
        total = self._policy.request_count
        elapsed = time.perf_counter() - self._started_at
        self._reporter.set(Ratio(completed, total, estimate_remaining(elapsed, completed, total)))

    def _complete_progress(self) -> None:
        total = self._policy.request_count
        self._reporter.set(Ratio(total, total, 0.0))
        self._reporter.stop()


__all__ = [
    "AtomicCounter",
    "SharedCounters",
    "LoadOrchestrator",
    "default_thread_floor",
]
