"""
Network telemetry collected while a load run is in flight.

Executors publish connection, stream and byte events into a named
:class:`EventSource`. Delivery to the subscriber happens on a dispatcher thread,
so totals trail the traffic that produced them; :meth:`TelemetryTap.drain`
waits for a marker event to make sure nothing published earlier is still queued.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .errors import TelemetryMisuseError

LOGGER = logging.getLogger("httpbench.telemetry")

CONNECTION_OPENED = "connection-opened"
CONNECTION_CLOSED = "connection-closed"
BYTES_READ = "bytes-read"
STREAM_OPENED = "stream-opened"
STREAM_CLOSED = "stream-closed"
MARKER = "marker"

_STOP = object()

Subscriber = Callable[[str, Any], None]


class EventSource:
    """Named publisher with at most one subscriber and asynchronous delivery."""

    def __init__(self, name: str, latency_s: float = 0.0) -> None:
        self.name = name
        self._latency_s = latency_s
        self._lock = threading.Lock()
        self._queue: queue.Queue[Any] | None = None
        self._thread: threading.Thread | None = None

    @property
    def subscribed(self) -> bool:
        return self._queue is not None

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if self._queue is not None:
                raise TelemetryMisuseError(f"event source {self.name!r} already has a subscriber")
            events: queue.Queue[Any] = queue.Queue()
            thread = threading.Thread(
                target=self._dispatch,
                args=(events, callback),
                name=f"telemetry-{self.name}",
                daemon=True,
            )
            self._queue = events
            self._thread = thread
        thread.start()
        LOGGER.debug("Subscribed to event source %s", self.name)

    def unsubscribe(self) -> None:
        with self._lock:
            events, thread = self._queue, self._thread
            self._queue = None
            self._thread = None
        if events is None:
            return
        events.put(_STOP)
        if thread is not None:
            thread.join(timeout=5.0)
        LOGGER.debug("Unsubscribed from event source %s", self.name)

    def publish(self, kind: str, value: Any = None) -> None:
        events = self._queue
        if events is None:
            return
        events.put((kind, value))

    def _dispatch(self, events: queue.Queue[Any], callback: Subscriber) -> None:
        while True:
            item = events.get()
            if item is _STOP:
                return
            kind, value = item
            if self._latency_s:
                time.sleep(self._latency_s)
            if kind == MARKER:
                value.set()
                continue
            try:
                callback(kind, value)
            except Exception:  # noqa: BLE001
                LOGGER.exception("telemetry subscriber failed on %s event", kind)


class TelemetryKind(enum.Enum):
    """Which layer of the networking stack a run is observed at."""

    CONNECTION = "sockets"
    STREAM = "streams"


_SOURCES: dict[str, EventSource] = {kind.value: EventSource(kind.value) for kind in TelemetryKind}


def get_source(name: str) -> EventSource:
    try:
        return _SOURCES[name]
    except KeyError:
        raise ValueError(f"Unknown event source {name!r}") from None


def kind_for_version(version: str) -> TelemetryKind:
    # HTTP/2 multiplexes streams over a connection, HTTP/1.1 uses one request per connection at a time
    if version == "2":
        return TelemetryKind.STREAM
    return TelemetryKind.CONNECTION


@dataclass(frozen=True)
class TelemetryTotals:
    bytes_read: int
    max_connections: int
    max_streams: int = 0


@dataclass
class _TapState:
    bytes_read: int = 0
    open_connections: set[Any] = field(default_factory=set)
    max_connections: int = 0
    open_streams: int = 0
    max_streams: int = 0

    def connection_opened(self, connection: Any) -> None:
        self.open_connections.add(connection)
        self.max_connections = max(self.max_connections, len(self.open_connections))

    def connection_closed(self, connection: Any) -> None:
        self.open_connections.discard(connection)


def _apply_connection_event(state: _TapState, kind: str, value: Any) -> None:
    if kind == CONNECTION_OPENED:
        state.connection_opened(value)
    elif kind == CONNECTION_CLOSED:
        state.connection_closed(value)
    elif kind == BYTES_READ:
        state.bytes_read += int(value)


def _apply_stream_event(state: _TapState, kind: str, value: Any) -> None:
    if kind == CONNECTION_OPENED:
        state.connection_opened(value)
    elif kind == CONNECTION_CLOSED:
        state.connection_closed(value)
    elif kind == STREAM_OPENED:
        state.open_streams += 1
        state.max_streams = max(state.max_streams, state.open_streams)
    elif kind == STREAM_CLOSED:
        state.open_streams = max(state.open_streams - 1, 0)
        state.bytes_read += int(value)


_HANDLERS: dict[TelemetryKind, Callable[[_TapState, str, Any], None]] = {
    TelemetryKind.CONNECTION: _apply_connection_event,
    TelemetryKind.STREAM: _apply_stream_event,
}


class TelemetryTap:
    """Accumulates bytes read and peak connections from one event source."""

    def __init__(self, kind: TelemetryKind, source: EventSource | None = None) -> None:
        self.kind = kind
        self.source = source or get_source(kind.value)
        self._apply = _HANDLERS[kind]
        self._state = _TapState()
        self._subscribed = False

    @classmethod
    def for_version(cls, version: str) -> "TelemetryTap":
        return cls(kind_for_version(version))

    def start(self) -> "TelemetryTap":
        self.source.subscribe(self._on_event)
        self._subscribed = True
        return self

    def drain(self) -> TelemetryTotals:
        """Wait for every event published so far, stop listening and return totals."""
        if not self._subscribed:
            raise TelemetryMisuseError(f"telemetry tap on {self.source.name!r} is not subscribed")
        delivered = threading.Event()
        self.source.publish(MARKER, delivered)
        delivered.wait()
        self.source.unsubscribe()
        self._subscribed = False
        totals = TelemetryTotals(
            bytes_read=self._state.bytes_read,
            max_connections=self._state.max_connections,
            max_streams=self._state.max_streams,
        )
        LOGGER.debug(
            "Drained %s telemetry: %d bytes, %d max connections",
            self.source.name,
            totals.bytes_read,
            totals.max_connections,
        )
        return totals

    def close(self) -> None:
        """Stop listening without waiting for queued events."""
        if self._subscribed:
            self.source.unsubscribe()
            self._subscribed = False

    def _on_event(self, kind: str, value: Any) -> None:
        self._apply(self._state, kind, value)

    def __enter__(self) -> "TelemetryTap":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "CONNECTION_OPENED",
    "CONNECTION_CLOSED",
    "BYTES_READ",
    "STREAM_OPENED",
    "STREAM_CLOSED",
    "EventSource",
    "TelemetryKind",
    "TelemetryTap",
    "TelemetryTotals",
    "get_source",
    "kind_for_version",
]
