"""Custom exceptions for timedfetch."""
from typing import Optional


class FetchError(Exception):
    """Base class for every failure of a single timed fetch."""

    kind = "fetch failed"

    def __init__(self, url: str, original: Optional[BaseException] = None, message: Optional[str] = None):
        self.url = url
        self.original = original
        if message is None:
            message = str(original) if original is not None else self.kind
        super().__init__(f"{self.kind} for {url!r}: {message}")


class RequestConstructionError(FetchError):
    """Raised when the URL or method cannot form a request. No I/O happened."""

    kind = "invalid request"


class TransportError(FetchError):
    """Raised on network/transport errors (DNS, connect, TLS) while sending."""

    kind = "transport error"


class DeadlineExceededError(FetchError):
    """Raised when the timeout elapsed or the caller's context was canceled first."""

    kind = "deadline exceeded"

    def __init__(self, url: str, reason: str, original: Optional[BaseException] = None):
        self.reason = reason
        super().__init__(url, original, message=reason)


class BodyReadError(FetchError):
    """Raised when reading the response body fails after headers were received."""

    kind = "body read failed"
