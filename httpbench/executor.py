from __future__ import annotations

import itertools
import logging
import ssl
from typing import Any

import httpx

from .config import RequestSpec, RunPolicy
from .records import OutcomeRecord, RecordLog
from .telemetry import (
    BYTES_READ,
    CONNECTION_CLOSED,
    CONNECTION_OPENED,
    STREAM_CLOSED,
    STREAM_OPENED,
    EventSource,
)

LOGGER = logging.getLogger("httpbench.executor")

_EXECUTOR_IDS = itertools.count(1)


def create_ssl_verify(enable_certificate_validation: bool) -> bool | ssl.SSLContext:
    if enable_certificate_validation:
        return True
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def create_transport(spec: RequestSpec, policy: RunPolicy) -> httpx.HTTPTransport:
    """Pooled transport holding at most one connection, speaking exactly ``spec.version``."""
    return httpx.HTTPTransport(
        verify=create_ssl_verify(policy.enable_certificate_validation),
        http1=not spec.http2,
        http2=spec.http2,
        limits=httpx.Limits(max_connections=1, max_keepalive_connections=1),
    )


class RequestExecutor:
    """Sends the run's request over a private single-connection client.

    Failures never propagate out of :meth:`send`; the open record is discarded,
    the failure is tallied in the record log and ``None`` is returned.
    """

    def __init__(
        self,
        spec: RequestSpec,
        policy: RunPolicy,
        cookies: httpx.Cookies | None = None,
        source: EventSource | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._spec = spec
        self._source = source
        self._id = next(_EXECUTOR_IDS)
        self._connection_ids = itertools.count(1)
        self._connection: str | None = None
        self._stream_open = False
        self.connected = False
        self.connect_failed = False
        self._client = httpx.Client(
            transport=transport or create_transport(spec, policy),
            timeout=spec.timeout_s,
            follow_redirects=policy.enable_redirects,
            cookies=cookies,
        )

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    def send(self, log: RecordLog) -> OutcomeRecord | None:
        request = self._client.build_request(
            self._spec.method,
            self._spec.uri,
            headers=list(self._spec.headers),
            content=self._spec.body,
            extensions={"trace": self._trace},
        )
        record = log.open(str(request.url))
        length = 0
        try:
            response = self._client.send(request, stream=True)
            try:
                for chunk in response.iter_raw():
                    length += len(chunk)
                    if not self._spec.http2:
                        self._publish(BYTES_READ, len(chunk))
            finally:
                response.close()
        except httpx.ConnectTimeout as exc:
            self.connect_failed = True
            LOGGER.warning("Connecting to %s timed out: %s", request.url, exc)
            log.discard(record, "timeout")
            return None
        except (httpx.ReadTimeout, httpx.WriteTimeout) as exc:
            # the request reached an established connection
            self.connected = True
            LOGGER.debug("Request to %s timed out: %s", request.url, exc)
            log.discard(record, "timeout")
            return None
        except httpx.TimeoutException as exc:
            LOGGER.debug("Request to %s timed out: %s", request.url, exc)
            log.discard(record, "timeout")
            return None
        except httpx.ConnectError as exc:
            self.connect_failed = True
            LOGGER.warning("Connecting to %s failed: %s", request.url, exc)
            log.discard(record, "transport")
            return None
        except httpx.ProtocolError as exc:
            LOGGER.warning("Protocol error for %s: %s", request.url, exc)
            log.discard(record, "protocol")
            return None
        except (httpx.HTTPError, OSError) as exc:
            LOGGER.warning("Request to %s failed: %s", request.url, exc)
            log.discard(record, "transport")
            return None
        finally:
            self._close_stream(length)

        self.connected = True
        return log.close(record, response.status_code, length)

    def close(self) -> None:
        self._client.close()
        if self._connection is not None:
            self._publish(CONNECTION_CLOSED, self._connection)
            self._connection = None

    def _trace(self, event_name: str, info: dict[str, Any]) -> None:
        if event_name == "connection.connect_tcp.complete":
            self.connected = True
            # the pool holds a single connection, so a new one replaces the previous
            if self._connection is not None:
                self._publish(CONNECTION_CLOSED, self._connection)
            self._connection = f"{self._id}-{next(self._connection_ids)}"
            self._publish(CONNECTION_OPENED, self._connection)
        elif event_name == "http2.send_request_headers.started":
            self._stream_open = True
            self._publish(STREAM_OPENED)

    def _close_stream(self, length: int) -> None:
        if self._stream_open:
            self._stream_open = False
            self._publish(STREAM_CLOSED, length)

    def _publish(self, kind: str, value: Any = None) -> None:
        if self._source is not None:
            self._source.publish(kind, value)

    def __enter__(self) -> "RequestExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["RequestExecutor", "create_transport", "create_ssl_verify"]
