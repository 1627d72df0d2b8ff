"""End-to-end fetches against a local http.server instance."""
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from timedfetch.domain import APIResponse, background, from_event
from timedfetch.domain.fetch_context import CANCELED, DEADLINE_EXCEEDED
from timedfetch.exceptions import (
    BodyReadError,
    DeadlineExceededError,
    RequestConstructionError,
    TransportError,
)
from timedfetch.services.timed_fetcher import TimedFetcher
from timedfetch.services.transport import new_session


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def _send(self, status: int, body: bytes):
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path == "/hello":
            self._send(200, b"hello")
        elif self.path == "/binary":
            self._send(200, bytes(range(256)) * 64)
        elif self.path == "/missing":
            self._send(404, b"")
        elif self.path == "/boom":
            self._send(500, b"boom")
        elif self.path == "/delayed":
            self.server.release.wait(0.6)
            self._send(200, b"ok")
        elif self.path == "/slow":
            self.server.release.wait(10)
            self._send(200, b"late")
        elif self.path == "/truncated":
            self.send_response(200)
            self.send_header("Content-Length", "100")
            self.end_headers()
            self.wfile.write(b"short")
        elif self.path == "/agent":
            self._send(200, self.headers.get("User-Agent", "").encode())
        else:
            self._send(404, b"no route")


def _session():
    session = new_session()
    # keep local test traffic off any proxy configured in the environment
    session.trust_env = False
    return session


@pytest.fixture
def base_url():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.daemon_threads = True
    httpd.release = threading.Event()
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{httpd.server_address[1]}"
    httpd.release.set()
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def fetcher():
    f = TimedFetcher(session_factory=_session, user_agent="TimedFetchTest/1.0")
    yield f
    f.close()


def test_hello_within_timeout(base_url, fetcher):
    assert fetcher.fetch(background(), f"{base_url}/hello", 5) == APIResponse(data=b"hello", status_code=200)


def test_exact_bytes_are_returned(base_url, fetcher):
    result = fetcher.fetch(background(), f"{base_url}/binary", 5)
    assert result.data == bytes(range(256)) * 64


def test_not_found_with_empty_body_is_a_result(base_url, fetcher):
    assert fetcher.fetch(background(), f"{base_url}/missing", 5) == APIResponse(data=b"", status_code=404)


def test_server_error_is_a_result(base_url, fetcher):
    assert fetcher.fetch(background(), f"{base_url}/boom", 5) == APIResponse(data=b"boom", status_code=500)


def test_user_agent_reaches_server(base_url, fetcher):
    assert fetcher.fetch(background(), f"{base_url}/agent", 5).text == "TimedFetchTest/1.0"


def test_slow_server_exceeds_deadline(base_url, fetcher):
    started = time.monotonic()
    with pytest.raises(DeadlineExceededError) as excinfo:
        fetcher.fetch(background(), f"{base_url}/slow", 0.3)
    assert time.monotonic() - started < 3
    assert excinfo.value.reason == DEADLINE_EXCEEDED


def test_parent_cancel_aborts_fetch(base_url, fetcher):
    ctx = background().with_cancel()
    timer = threading.Timer(0.2, ctx.cancel)
    timer.start()
    started = time.monotonic()
    with pytest.raises(DeadlineExceededError) as excinfo:
        fetcher.fetch(ctx, f"{base_url}/slow", 5)
    assert time.monotonic() - started < 3
    assert excinfo.value.reason == CANCELED


def test_stop_event_aborts_fetch(base_url, fetcher):
    stop_event = threading.Event()
    ctx = from_event(stop_event)
    timer = threading.Timer(0.2, stop_event.set)
    timer.start()
    with pytest.raises(DeadlineExceededError) as excinfo:
        fetcher.fetch(ctx, f"{base_url}/slow", 5)
    assert excinfo.value.reason == CANCELED


def test_truncated_body_is_a_body_read_error(base_url, fetcher):
    with pytest.raises(BodyReadError):
        fetcher.fetch(background(), f"{base_url}/truncated", 5)


def test_unreachable_host_is_a_transport_error(fetcher):
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    # nothing listens on the port once the socket is closed
    with pytest.raises(TransportError):
        fetcher.fetch(background(), f"http://127.0.0.1:{port}/", 5)


def test_missing_scheme_is_rejected(fetcher):
    with pytest.raises(RequestConstructionError):
        fetcher.fetch(background(), "127.0.0.1/hello", 5)


def test_concurrent_fetches_are_independent(base_url, fetcher):
    results = []
    lock = threading.Lock()

    def call():
        try:
            status = fetcher.fetch(background(), f"{base_url}/delayed", 3).status_code
        except Exception as e:
            status = type(e).__name__
        with lock:
            results.append(status)

    threads = [threading.Thread(target=call) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert results == [200] * 8


def test_cancel_before_headers_releases_request_promptly(base_url, fetcher):
    url = f"{base_url}/slow"
    ctx = background().with_cancel()
    timer = threading.Timer(0.2, ctx.cancel)
    timer.start()
    with pytest.raises(DeadlineExceededError):
        fetcher.fetch(ctx, url, 5)

    # the worker must not stay parked on the socket until the server answers
    worker_name = f"timedfetch GET {url}"
    give_up = time.monotonic() + 2
    while any(t.name == worker_name for t in threading.enumerate()):
        assert time.monotonic() < give_up, "aborted request still running"
        time.sleep(0.05)

    assert fetcher.fetch(background(), f"{base_url}/hello", 1).status_code == 200
