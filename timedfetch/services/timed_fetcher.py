from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from timedfetch.domain.api_response import APIResponse
from timedfetch.domain.fetch_context import DEADLINE_EXCEEDED, FetchContext, Timeout, background
from timedfetch.exceptions import (
    BodyReadError,
    DeadlineExceededError,
    RequestConstructionError,
    TransportError,
)
from timedfetch.services.transport import new_session

logger = logging.getLogger(__name__)

# RFC 9110 token characters
_METHOD_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_SUPPORTED_SCHEMES = ("http", "https")


class TimedFetcher:
    """Issue one HTTP request bounded by an overall timeout.

    The timeout covers connect, send and the full body read. Each call runs
    on its own daemon thread, so the caller can stop waiting as soon as the
    derived context is done and concurrent calls never queue behind each
    other. When the context fires, the call's session is closed, which shuts
    down the socket of the request in flight.

    ``requests.Session`` is not documented as thread-safe, so every call gets
    its own session from ``session_factory``.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], requests.Session] = new_session,
        chunk_size: int = 8192,
        user_agent: Optional[str] = None,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._session_factory = session_factory
        self._chunk_size = chunk_size
        self._user_agent = user_agent
        self._closed = False

    def fetch(self, ctx: Optional[FetchContext], url: str, timeout: Timeout, method: str = "GET") -> APIResponse:
        """Fetch ``url`` and return its body and status code.

        Any HTTP status is a successful result. Raises RequestConstructionError,
        TransportError, DeadlineExceededError or BodyReadError.
        """
        if self._closed:
            raise RuntimeError("fetcher is closed")
        method = self._validate(method, url)
        scope = (ctx if ctx is not None else background()).with_timeout(timeout)
        try:
            if scope.done():
                raise DeadlineExceededError(url, scope.err)

            finished = threading.Event()
            future: Future = Future()
            future.add_done_callback(lambda _: finished.set())
            remove = scope.add_done_callback(lambda _: finished.set())
            worker = threading.Thread(
                target=self._run,
                args=(future, scope, method, url),
                name=f"timedfetch {method} {url}",
                daemon=True,
            )
            try:
                worker.start()
                finished.wait()
            finally:
                remove()

            if future.done():
                return future.result()
            logger.info("Fetch of %s abandoned: %s", url, scope.err)
            raise DeadlineExceededError(url, scope.err)
        finally:
            scope.cancel()

    def _run(self, future: Future, scope: FetchContext, method: str, url: str) -> None:
        future.set_running_or_notify_cancel()
        try:
            result = self._execute(scope, method, url)
        except BaseException as e:
            # re-raised in the caller by future.result()
            future.set_exception(e)
        else:
            future.set_result(result)

    def _validate(self, method: str, url: str) -> str:
        if not isinstance(method, str) or not _METHOD_RE.match(method):
            raise RequestConstructionError(url, message=f"invalid method {method!r}")
        method = method.upper()
        try:
            prepared = requests.Request(method, url, headers=self._headers()).prepare()
        except requests.exceptions.RequestException as e:
            raise RequestConstructionError(url, e) from e
        # requests passes non-http schemes through prepare() unchanged
        if urlparse(prepared.url).scheme.lower() not in _SUPPORTED_SCHEMES:
            raise RequestConstructionError(url, message="unsupported URL scheme")
        return method

    def _headers(self):
        if self._user_agent:
            return {"User-Agent": self._user_agent}
        return None

    def _execute(self, scope: FetchContext, method: str, url: str) -> APIResponse:
        remaining = scope.remaining()
        if scope.done() or remaining is None or remaining <= 0:
            raise DeadlineExceededError(url, scope.err or DEADLINE_EXCEEDED)

        with self._session_factory() as session:
            # registered before sending so a request still waiting for headers is aborted too
            abort = scope.add_done_callback(lambda _: session.close())
            try:
                response = self._send(scope, session, method, url, remaining)
                with response:
                    remove = scope.add_done_callback(lambda _: response.close())
                    try:
                        data = self._read_body(scope, response, url)
                    finally:
                        remove()
            finally:
                abort()

        logger.debug("Fetched %s -> status %s, %d bytes", url, response.status_code, len(data))
        return APIResponse(data=data, status_code=response.status_code)

    def _send(self, scope: FetchContext, session, method: str, url: str, remaining: float):
        try:
            return session.request(
                method,
                url,
                headers=self._headers(),
                stream=True,
                timeout=(remaining, remaining),
            )
        except requests.exceptions.Timeout as e:
            raise DeadlineExceededError(url, scope.err or DEADLINE_EXCEEDED, e) from e
        except requests.exceptions.RequestException as e:
            if scope.done():
                raise DeadlineExceededError(url, scope.err, e) from e
            raise TransportError(url, e) from e

    def _read_body(self, scope: FetchContext, response: requests.Response, url: str) -> bytes:
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=self._chunk_size):
                if scope.done():
                    break
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            if scope.done():
                raise DeadlineExceededError(url, scope.err, e) from e
            raise BodyReadError(url, e) from e
        except Exception as e:
            # Closing the response from the done callback can surface raw I/O errors.
            if scope.done():
                raise DeadlineExceededError(url, scope.err, e) from e
            raise
        if scope.done():
            raise DeadlineExceededError(url, scope.err)
        return b"".join(chunks)

    def close(self) -> None:
        """Reject further fetches. Calls already running finish on their own."""
        self._closed = True

    def __enter__(self) -> TimedFetcher:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
