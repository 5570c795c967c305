from __future__ import annotations


class HttpBenchError(Exception):
    """Base class for errors raised by the measurement harness."""


class MeasurementStateError(HttpBenchError):
    """Raised when an outcome record is opened or closed out of order."""


class TelemetryMisuseError(HttpBenchError):
    """Raised when a telemetry source is subscribed twice or drained unsubscribed."""


class SchemaVersionError(HttpBenchError):
    """Raised when a persisted session was written with an unknown schema."""


class TargetUnreachableError(HttpBenchError):
    """Raised when no connection to the target could ever be established."""


class NoMeasurementsError(HttpBenchError):
    """Raised when statistics are requested for a result without records."""


__all__ = [
    "HttpBenchError",
    "MeasurementStateError",
    "TelemetryMisuseError",
    "SchemaVersionError",
    "TargetUnreachableError",
    "NoMeasurementsError",
]
