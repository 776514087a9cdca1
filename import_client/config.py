"""
import_client/config.py

Client-side settings for parsing and uploading import files.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class ImportClientSettings:
    """
    Parser cadence, channel capacity and HTTP retry behavior for the import client.
    """

    chunk_size: int = 5000
    progress_interval: int = 1000
    channel_capacity: int = 2
    max_error_details: int = 100
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    max_batch_attempts: int = 3


@lru_cache(maxsize=1)
def get_import_client_settings() -> ImportClientSettings:
    """
    Return cached import client settings from environment variables.
    """

    return ImportClientSettings(
        chunk_size=min(10_000, max(1, _get_int_env("IMPORT_CLIENT_CHUNK_SIZE", 5000))),
        progress_interval=max(1, _get_int_env("IMPORT_CLIENT_PROGRESS_INTERVAL", 1000)),
        channel_capacity=max(1, _get_int_env("IMPORT_CLIENT_CHANNEL_CAPACITY", 2)),
        max_error_details=max(0, _get_int_env("IMPORT_CLIENT_MAX_ERROR_DETAILS", 100)),
        timeout_seconds=max(1.0, _get_float_env("IMPORT_CLIENT_TIMEOUT_SECONDS", 30.0)),
        max_retries=max(0, _get_int_env("IMPORT_CLIENT_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("IMPORT_CLIENT_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("IMPORT_CLIENT_BACKOFF_MULTIPLIER", 2.0)),
        max_batch_attempts=max(1, _get_int_env("IMPORT_CLIENT_MAX_BATCH_ATTEMPTS", 3)),
    )
