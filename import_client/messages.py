"""
import_client/messages.py

Messages exchanged with the parser worker. Inbound: StartParse, CancelParse.
Outbound: ParseProgress, ChunkReady, ParseComplete, ParseError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path


@dataclass(frozen=True)
class StartParse:
    file_path: Path
    site_id: int
    import_id: str
    platform: str
    earliest_allowed_date: date
    latest_allowed_date: date
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True)
class CancelParse:
    pass


@dataclass(frozen=True)
class ParseProgress:
    parsed: int
    skipped: int
    errors: int


@dataclass(frozen=True)
class ChunkReady:
    events: list[dict[str, str]]
    chunk_index: int


@dataclass(frozen=True)
class RowError:
    row: int
    message: str


@dataclass(frozen=True)
class ParseComplete:
    total_parsed: int
    total_skipped: int
    total_errors: int
    error_details: list[RowError] = field(default_factory=list)
    cancelled: bool = False


@dataclass(frozen=True)
class ParseError:
    message: str


InboundMessage = StartParse | CancelParse
OutboundMessage = ParseProgress | ChunkReady | ParseComplete | ParseError
