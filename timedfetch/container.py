"""Dependency injection container for timedfetch."""
from dependency_injector import containers, providers

from timedfetch import config as env
from timedfetch.services.timed_fetcher import TimedFetcher
from timedfetch.services.transport import new_session


# Environment variables used by the container (read via `timedfetch.config` helpers).
#
# USER_AGENT (str, default: "TimedFetch/0.1")
#   User-Agent header for outbound requests.
#
# TIMEDFETCH_TIMEOUT (float seconds, default: 5.0)
#   Overall timeout used by the CLI when --timeout is not given.
#
# TIMEDFETCH_CHUNK_SIZE (int bytes, default: 8192)
#   Chunk size used while reading response bodies.
def build_env() -> dict:
    return {
        "USER_AGENT": env.get_str_env("USER_AGENT", "TimedFetch/0.1"),
        "TIMEDFETCH_TIMEOUT": env.default_timeout_seconds(),
        "TIMEDFETCH_CHUNK_SIZE": env.get_int_env("TIMEDFETCH_CHUNK_SIZE", 8192),
    }


class Container(containers.DeclarativeContainer):
    """Dependency injection container for the fetcher and its transport."""

    config = providers.Configuration(default=build_env())

    # Called once per fetch; sessions are never shared between threads
    session_factory = providers.Object(new_session)

    timed_fetcher = providers.Singleton(
        TimedFetcher,
        session_factory=session_factory,
        chunk_size=config.TIMEDFETCH_CHUNK_SIZE.as_(int),
        user_agent=config.USER_AGENT.as_(str),
    )
