import os
import logging
from typing import Optional

from dotenv import find_dotenv, load_dotenv


def load_env_file() -> Optional[str]:
	"""Load the nearest ``.env`` (searched upward from the working directory).

	Existing environment variables win. Returns the loaded path, or None.
	"""
	path = find_dotenv(usecwd=True)
	if not path:
		return None
	load_dotenv(path)
	return path


def get_str_env(name: str, default: str) -> str:
	raw = os.getenv(name)
	if raw is None or raw == "":
		return default
	return raw


def get_int_env(name: str, default: int) -> int:
	raw = os.getenv(name)
	if raw is None or raw == "":
		return default
	try:
		return int(raw)
	except ValueError:
		logging.exception("Invalid %s: %r", name, raw)
		return default


def get_float_env(name: str, default: float) -> float:
	raw = os.getenv(name)
	if raw is None or raw == "":
		return default
	try:
		return float(raw)
	except ValueError:
		logging.exception("Invalid %s: %r", name, raw)
		return default


def default_timeout_seconds() -> float:
	return get_float_env("TIMEDFETCH_TIMEOUT", 5.0)


def log_level() -> str:
	return (get_str_env("TIMEDFETCH_LOG_LEVEL", "INFO") or "INFO").strip().upper()
