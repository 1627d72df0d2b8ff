import argparse
import logging
import sys
from typing import Optional, Sequence

from timedfetch import config as env
from timedfetch.container import Container, build_env
from timedfetch.domain import background
from timedfetch.exceptions import FetchError
from timedfetch.services.fetcher import Fetcher


DEFAULT_URL = "https://example.com"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GET a URL with an overall timeout.")
    parser.add_argument("url", nargs="?", default=DEFAULT_URL)
    parser.add_argument("--timeout", type=float, default=None,
                        help="overall timeout in seconds (default: TIMEDFETCH_TIMEOUT or 5)")
    parser.add_argument("--method", default="GET")
    parser.add_argument("--log-level", default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None, container: Optional[Container] = None) -> int:
    args = build_parser().parse_args(argv)
    env.load_env_file()
    logging.basicConfig(level=(args.log_level or env.log_level()).upper())

    if container is None:
        container = Container()
        # .env was loaded after the container module computed its defaults
        container.config.from_dict(build_env())
    timeout = args.timeout if args.timeout is not None else container.config.TIMEDFETCH_TIMEOUT()
    fetcher: Fetcher = container.timed_fetcher()
    try:
        response = fetcher.fetch(background(), args.url, timeout, method=args.method)
    except FetchError as e:
        print(f"Error: {e}")
        return 1
    finally:
        fetcher.close()

    print(f"StatusCode: {response.status_code}")
    print(f"Data: {response.text}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
