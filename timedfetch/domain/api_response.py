from typing import NamedTuple


class APIResponse(NamedTuple):
    """Body and status code of a completed fetch."""
    data: bytes
    status_code: int

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")
