"""
app/logging_utils.py

Structured JSON log lines for import lifecycle events.
"""

from __future__ import annotations

import enum
import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any


def _json_default(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.

    Fields set to None are omitted; enums, UUIDs and datetimes are serialized
    to their plain values.
    """

    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {
        "event": event,
        "logged_at": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
    }
    payload.update({key: value for key, value in fields.items() if value is not None})
    logger.log(level, json.dumps(payload, default=_json_default, sort_keys=True))
