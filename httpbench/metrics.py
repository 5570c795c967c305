"""
OpenTelemetry export of run results.

Every measured request becomes one sample of the ``httpbench.request.duration``
histogram, and the aggregated statistics of the run are recorded as one sample
each, so a run can be compared with earlier runs in any OTLP backend.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

from .records import RunResult
from .stats import NS_PER_SECOND, compute_stats

LOGGER = logging.getLogger("httpbench.metrics")

METER_NAME = "httpbench"
API_KEY_HEADER = "x-otlp-api-key"
EXPORT_INTERVAL_MS = 60_000

NS_PER_MS = NS_PER_SECOND // 1000

# (instrument name, Stats attribute), exported in milliseconds
_DURATION_STATS = (
    ("httpbench.mean", "mean_ns"),
    ("httpbench.std_dev", "std_dev_ns"),
    ("httpbench.error", "error_ns"),
    ("httpbench.median", "median_ns"),
    ("httpbench.min", "min_ns"),
    ("httpbench.max", "max_ns"),
    ("httpbench.percentile95", "percentile95_ns"),
)


def parse_connection_string(connection_string: str) -> tuple[str, dict[str, str] | None]:
    """Split ``endpoint;api-key`` into the collector endpoint and export headers."""
    endpoint, _, api_key = connection_string.partition(";")
    endpoint = endpoint.strip()
    if not endpoint:
        raise ValueError("metrics connection string needs an endpoint")
    api_key = api_key.strip()
    return endpoint, ({API_KEY_HEADER: api_key} if api_key else None)


def create_meter_provider(connection_string: str) -> MeterProvider:
    endpoint, headers = parse_connection_string(connection_string)
    exporter = OTLPMetricExporter(
        endpoint=endpoint,
        headers=headers,
        insecure=endpoint.startswith("http://"),
    )
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=EXPORT_INTERVAL_MS)
    LOGGER.info("Exporting metrics to %s", endpoint)
    return MeterProvider(
        resource=Resource.create({SERVICE_NAME: METER_NAME}),
        metric_readers=[reader],
    )


class OpenTelemetryPrinter:
    """Publishes a run through an OpenTelemetry meter provider.

    A provider built by :meth:`from_connection_string` belongs to the printer and
    is shut down after the first publish; an injected provider is only flushed.
    """

    def __init__(
        self,
        meter_provider: MeterProvider,
        console: TextIO | None = None,
        owns_provider: bool = False,
    ) -> None:
        self._provider = meter_provider
        self._console = console or sys.stdout
        self._owns_provider = owns_provider

    @classmethod
    def from_connection_string(cls, connection_string: str, console: TextIO | None = None) -> "OpenTelemetryPrinter":
        return cls(create_meter_provider(connection_string), console, owns_provider=True)

    def summarize(self, result: RunResult) -> None:
        if not result.summaries:
            LOGGER.debug("No measurements to publish")
            return

        self._console.write("Publishing metrics...\n")
        meter = self._provider.get_meter(METER_NAME)
        run_attributes = {
            "url": ",".join(result.urls()),
            "request_count": result.behavior.request_count,
            "client_count": result.behavior.clients_count,
        }

        requests = meter.create_histogram(
            "httpbench.request.duration",
            unit="ms",
            description="Duration of each measured request",
        )
        for record in result.summaries:
            requests.record(
                record.duration_ns / NS_PER_MS,
                {
                    **run_attributes,
                    "url": record.url,
                    "status_code": record.status_code if record.status_code is not None else 0,
                    "length": record.length,
                },
            )

        stats = compute_stats(result)
        for name, attribute in _DURATION_STATS:
            meter.create_histogram(name, unit="ms").record(getattr(stats, attribute) / NS_PER_MS, run_attributes)
        meter.create_histogram("httpbench.throughput", unit="By/s").record(stats.bytes_per_sec, run_attributes)
        meter.create_histogram("httpbench.requests_per_sec", unit="{request}/s").record(
            stats.requests_per_sec, run_attributes
        )

        self._provider.force_flush()
        if self._owns_provider:
            self._provider.shutdown()


__all__ = [
    "OpenTelemetryPrinter",
    "create_meter_provider",
    "parse_connection_string",
]
