from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from . import persistence
from .charts import render_diff_chart, render_latency_chart
from .config import (
    DEFAULT_CLIENTS_COUNT,
    DEFAULT_REQUEST_COUNT,
    DEFAULT_TIMEOUT_S,
    LOG_LEVELS,
    SUPPORTED_VERSIONS,
    RequestSpec,
    RunPolicy,
    parse_headers,
)
from .cookies import CookieStore
from .errors import NoMeasurementsError, SchemaVersionError, TargetUnreachableError
from .load import LoadOrchestrator
from .metrics import OpenTelemetryPrinter
from .printer import CompositePrinter, DiffPrinter, FilePrinter, StatisticsPrinter

LOGGER = logging.getLogger("httpbench")

EXIT_OK = 0
EXIT_UNREACHABLE = 1
EXIT_INVALID_INPUT = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="httpbench", description="HTTP load generation and comparison")
    subparsers = parser.add_subparsers(dest="command", required=True)

    perf = subparsers.add_parser("perf", help="Send requests concurrently and print latency statistics")
    perf.add_argument("uri", help="Target URL")
    perf.add_argument("-m", "--method", default="GET")
    perf.add_argument(
        "-v",
        "--version",
        default=os.environ.get("HTTPBENCH_VERSION", "1.1"),
        choices=SUPPORTED_VERSIONS,
        help="HTTP version",
    )
    perf.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        help="Request header in Name:Value form, may be repeated",
    )
    perf.add_argument("--body", help="Request body sent with every request")
    perf.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=float(os.environ.get("HTTPBENCH_TIMEOUT", DEFAULT_TIMEOUT_S)),
        help="Per-request timeout in seconds",
    )
    perf.add_argument(
        "-n",
        "--requests",
        type=int,
        default=int(os.environ.get("HTTPBENCH_REQUESTS", DEFAULT_REQUEST_COUNT)),
        help="Number of measured requests",
    )
    perf.add_argument(
        "-c",
        "--clients",
        type=int,
        default=int(os.environ.get("HTTPBENCH_CLIENTS", DEFAULT_CLIENTS_COUNT)),
        help="Number of concurrent clients",
    )
    perf.add_argument("--no-redirects", action="store_true", help="Do not follow redirects")
    perf.add_argument(
        "--no-certificate-validation",
        action="store_true",
        help="Accept any server certificate",
    )
    perf.add_argument("--cookie-container", help="JSON file used to load and persist cookies")
    perf.add_argument("--output", help="Save the session to this JSON file")
    perf.add_argument("--csv", help="Export the per-request records to this CSV file")
    perf.add_argument("--chart", help="Render a latency chart to this image file")
    perf.add_argument(
        "--metrics",
        default=os.environ.get("HTTPBENCH_METRICS"),
        help="Publish the run over OTLP, given as endpoint or endpoint;api-key",
    )

    diff = subparsers.add_parser("diff", help="Compare two saved sessions")
    diff.add_argument("files", nargs="+", metavar="FILE", help="One or two session files")
    diff.add_argument("--chart", help="Render a comparison chart to this image file")

    for subparser in (perf, diff):
        subparser.add_argument(
            "--log-level",
            default=os.environ.get("HTTPBENCH_LOG_LEVEL", "INFO"),
            choices=LOG_LEVELS,
            type=str.upper,
            help="Logging level",
        )
    args = parser.parse_args(argv)
    if args.command == "diff" and len(args.files) > 2:
        parser.error("diff accepts at most two session files")
    return args


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def run_perf(args: argparse.Namespace) -> int:
    spec = RequestSpec(
        uri=args.uri,
        method=args.method,
        version=args.version,
        headers=parse_headers(args.header),
        body=args.body.encode("utf-8") if args.body is not None else None,
        timeout_s=args.timeout,
    )
    policy = RunPolicy(
        request_count=args.requests,
        clients_count=args.clients,
        enable_redirects=not args.no_redirects,
        enable_certificate_validation=not args.no_certificate_validation,
        log_level=args.log_level,
    )
    # a malformed connection string fails before any request is sent
    metrics_printer = OpenTelemetryPrinter.from_connection_string(args.metrics) if args.metrics else None
    orchestrator = LoadOrchestrator(policy, cookie_store=CookieStore(args.cookie_container))
    result = orchestrator.run(spec)

    printers = [StatisticsPrinter()]
    if args.output:
        printers.append(FilePrinter(args.output))
    if metrics_printer is not None:
        printers.append(metrics_printer)
    CompositePrinter(*printers).summarize(result)

    if args.csv:
        persistence.export_csv(result, args.csv)
    if args.chart:
        render_latency_chart(result, args.chart)
    return EXIT_OK


def run_diff(args: argparse.Namespace) -> int:
    files = [Path(item) for item in args.files]
    if len(files) == 1:
        session = persistence.load(files[0])
        StatisticsPrinter().summarize(session)
        if args.chart:
            render_latency_chart(session, args.chart)
        return EXIT_OK

    result = DiffPrinter().compare(files[0], files[1])
    if args.chart and result is not None:
        render_diff_chart(result, args.chart)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        if args.command == "perf":
            return run_perf(args)
        return run_diff(args)
    except TargetUnreachableError as exc:
        LOGGER.error("%s", exc)
        return EXIT_UNREACHABLE
    except (ValueError, SchemaVersionError, NoMeasurementsError, FileNotFoundError) as exc:
        LOGGER.error("Invalid input: %s", exc)
        return EXIT_INVALID_INPUT


if __name__ == "__main__":
    sys.exit(main())
