"""
HTTP load generation harness.

This package sends one request concurrently from many clients, records the
latency and status of every attempt, collects byte and connection counters from
the networking stack, and renders, persists and compares the resulting
statistics.
"""

from .config import RequestSpec, RunPolicy
from .errors import (
    HttpBenchError,
    MeasurementStateError,
    NoMeasurementsError,
    SchemaVersionError,
    TargetUnreachableError,
    TelemetryMisuseError,
)
from .load import LoadOrchestrator
from .main import main
from .records import OutcomeRecord, RunResult
from .session import MeasurementSession
from .stats import compare, compute_stats, diff

__all__ = [
    "RequestSpec",
    "RunPolicy",
    "HttpBenchError",
    "MeasurementStateError",
    "NoMeasurementsError",
    "SchemaVersionError",
    "TargetUnreachableError",
    "TelemetryMisuseError",
    "LoadOrchestrator",
    "OutcomeRecord",
    "RunResult",
    "MeasurementSession",
    "compare",
    "compute_stats",
    "diff",
    "main",
]
