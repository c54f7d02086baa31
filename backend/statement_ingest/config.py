"""Runtime options for the ingestion pipeline.

Values default to the constants in ``constants.py`` and can be overridden via
environment variables:

  MAX_FILE_BYTES         maximum upload size in bytes (default 8MB)
  MAX_ROWS               row cap; extra rows are truncated (default 50000)
  HEADER_SEARCH_ROWS     rows scanned for the header (default 40)
  NOISE_MIN_VALID_ROWS   valid rows required before early stop (default 5)
  NOISE_STOP_AFTER       consecutive noise rows that stop filtering (default 3)
  BANK_PROFILES_FILE     JSON document with bank profiles (optional)
"""

from __future__ import annotations

import os
from typing import Mapping, NamedTuple

from .constants import (
    HEADER_SEARCH_ROWS,
    MAX_FILE_BYTES,
    MAX_ROWS,
    NOISE_MIN_VALID_ROWS,
    NOISE_STOP_AFTER,
)


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


class ParserOptions(NamedTuple):
    max_file_bytes: int = MAX_FILE_BYTES
    max_rows: int = MAX_ROWS
    header_search_rows: int = HEADER_SEARCH_ROWS
    noise_min_valid_rows: int = NOISE_MIN_VALID_ROWS
    noise_stop_after: int = NOISE_STOP_AFTER
    bank_profiles_file: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ParserOptions":
        env = os.environ if env is None else env
        return cls(
            max_file_bytes=_int_env(env, "MAX_FILE_BYTES", MAX_FILE_BYTES),
            max_rows=_int_env(env, "MAX_ROWS", MAX_ROWS),
            header_search_rows=_int_env(env, "HEADER_SEARCH_ROWS", HEADER_SEARCH_ROWS),
            noise_min_valid_rows=_int_env(
                env, "NOISE_MIN_VALID_ROWS", NOISE_MIN_VALID_ROWS
            ),
            noise_stop_after=_int_env(env, "NOISE_STOP_AFTER", NOISE_STOP_AFTER),
            bank_profiles_file=env.get("BANK_PROFILES_FILE") or None,
        )


__all__ = ["ParserOptions"]
