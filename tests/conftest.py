"""
Pytest configuration shared by the test modules.

Provides a local threaded HTTP/1.1 server with a fast endpoint, a slow endpoint
(sleeps ``SLOW_DELAY_S`` before answering) and ``/status/<code>`` endpoints,
plus a cleartext HTTP/2 (prior knowledge) server on hypercorn answering ``BODY``.
"""

import asyncio
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
from hypercorn.asyncio import serve
from hypercorn.config import Config

from httpbench.config import RunPolicy
from httpbench.records import OutcomeRecord, RunResult

SLOW_DELAY_S = 0.5
BODY = b"hello"


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self._respond()

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        self.rfile.read(length)
        self._respond()

    def _respond(self):
        path = self.path.split("?", 1)[0]
        code = 200
        if path == "/slow":
            time.sleep(SLOW_DELAY_S)
        elif path.startswith("/status/"):
            code = int(path.rsplit("/", 1)[1])
        try:
            self.send_response(code)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(BODY)))
            self.end_headers()
            self.wfile.write(BODY)
        except (BrokenPipeError, ConnectionResetError):
            # the client gave up waiting
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture(scope="session")
def http_server():
    """Base url of the local test server."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, name="test-http-server", daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


async def _h2_app(scope, receive, send):
    if scope["type"] == "lifespan":
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
    await send(
        {
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"text/plain"), (b"content-length", str(len(BODY)).encode())],
        }
    )
    await send({"type": "http.response.body", "body": BODY})


class _H2Server:
    """hypercorn on its own event loop thread, stopped through ``shutdown``."""

    def __init__(self, port):
        self.config = Config()
        self.config.bind = [f"127.0.0.1:{port}"]
        self.config.loglevel = "WARNING"
        self.loop = None
        self.shutdown_event = None
        self.thread = threading.Thread(target=asyncio.run, args=(self._serve(),), name="test-h2-server", daemon=True)

    async def _serve(self):
        self.loop = asyncio.get_running_loop()
        self.shutdown_event = asyncio.Event()
        await serve(_h2_app, self.config, shutdown_trigger=self.shutdown_event.wait)

    def shutdown(self):
        if self.loop is not None:
            self.loop.call_soon_threadsafe(self.shutdown_event.set)
        self.thread.join(timeout=5)


def _wait_for_port(port, timeout_s=5.0):
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            with socket.create_connection(("127.0.0.1", port), timeout=0.1):
                return
        except OSError:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.02)


@pytest.fixture(scope="session")
def h2c_server():
    """Base url of a local server speaking HTTP/2 without TLS."""
    port = _free_port()
    server = _H2Server(port)
    server.thread.start()
    _wait_for_port(port)
    yield f"http://127.0.0.1:{port}"
    server.shutdown()


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def unused_port():
    return _free_port()


def make_result(durations_s, status_code=200, total_bytes_read=1, max_connections=1, request_count=None, clients_count=1, url="url"):
    """RunResult whose records all start at the same instant and last ``durations_s``."""
    start = 1_000
    records = [
        OutcomeRecord(url, start_ns=start, end_ns=start + int(d * 1_000_000_000), status_code=status_code)
        for d in durations_s
    ]
    policy = RunPolicy(
        request_count=request_count or max(len(records), 1),
        clients_count=clients_count,
    )
    return RunResult(
        summaries=records,
        total_bytes_read=total_bytes_read,
        max_connections=max_connections,
        behavior=policy,
    )


@pytest.fixture
def result_factory():
    return make_result
