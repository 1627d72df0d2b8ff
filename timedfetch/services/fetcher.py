from __future__ import annotations

from typing import Optional, Protocol

from timedfetch.domain.api_response import APIResponse
from timedfetch.domain.fetch_context import FetchContext, Timeout


class Fetcher(Protocol):
    """Fetch a URL within a time bound and return its full body and status.

    Kept small so the transport can be swapped (tests use fakes).
    """

    def fetch(self, ctx: Optional[FetchContext], url: str, timeout: Timeout, method: str = "GET") -> APIResponse: ...

    def close(self) -> None: ...
