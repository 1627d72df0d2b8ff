"""Domain objects for timedfetch - explicit re-exports to satisfy linters."""
from .api_response import APIResponse as APIResponse
from .fetch_context import FetchContext as FetchContext
from .fetch_context import background as background
from .fetch_context import from_event as from_event

__all__ = ["APIResponse", "FetchContext", "background", "from_event"]
