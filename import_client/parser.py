"""
import_client/parser.py

Streaming CSV parser: maps export columns to canonical field names, admits
rows by date range, and emits fixed-size chunks and periodic progress.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TextIO

from import_client.date_range import DateRangeFilter, parse_created_at
from import_client.mappings import TIMESTAMP_FIELD, map_headers, platform_fields
from import_client.messages import ChunkReady, OutboundMessage, ParseComplete, ParseProgress, RowError

logger = logging.getLogger(__name__)

_SNIFF_BYTES = 64 * 1024
_DELIMITERS = ",;\t|"


class ParseCancelled(Exception):
    """
    Raised by an emit callback or cancel check to stop the parse.
    """


@dataclass
class ParseState:
    """
    Counters and the pending chunk for exactly one parse.
    """

    chunk_index: int = 0
    total_parsed: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    rows_seen: int = 0
    last_progress_at: int = 0
    batch: list[dict[str, str]] = field(default_factory=list)
    error_details: list[RowError] = field(default_factory=list)

    def progress(self) -> ParseProgress:
        return ParseProgress(
            parsed=self.total_parsed,
            skipped=self.total_skipped,
            errors=self.total_errors,
        )


class CSVImportParser:
    def __init__(
        self,
        *,
        platform: str,
        date_filter: DateRangeFilter,
        chunk_size: int = 5000,
        progress_interval: int = 1000,
        max_error_details: int = 100,
    ) -> None:
        self._platform = platform
        self._fields = platform_fields(platform)
        if not self._fields:
            raise ValueError(f"Unsupported import platform '{platform}'.")
        self._date_filter = date_filter
        self._chunk_size = max(1, chunk_size)
        self._progress_interval = max(1, progress_interval)
        self._max_error_details = max(0, max_error_details)

    def parse(
        self,
        handle: TextIO,
        *,
        emit: Callable[[OutboundMessage], None],
        should_cancel: Callable[[], bool] = lambda: False,
    ) -> ParseComplete:
        """
        Parse ``handle`` to the end, emitting ChunkReady and ParseProgress messages.

        Returns the final summary; ``cancelled`` is set when the parse stopped early.
        A row the csv reader rejects is counted as a row error. An unreadable
        header, a decode failure or an I/O error propagates to the caller.
        """

        state = ParseState()
        try:
            reader = csv.reader(handle, dialect=self._sniff(handle))
            header = next(reader, None)
            if header is None:
                return self._summary(state)
            columns = map_headers(self._platform, header)
            positions = {name: index for index, name in enumerate(columns) if name in self._fields}

            while True:
                if should_cancel():
                    raise ParseCancelled()
                try:
                    cells = next(reader)
                except StopIteration:
                    break
                except csv.Error as exc:
                    state.rows_seen += 1
                    self._record_error(state, reader.line_num, f"Unreadable row: {exc}")
                    continue
                if not any(cell.strip() for cell in cells):
                    continue
                state.rows_seen += 1
                self._handle_row(state, cells, len(columns), positions, reader.line_num, emit)
                if state.rows_seen - state.last_progress_at >= self._progress_interval:
                    emit(state.progress())
                    state.last_progress_at = state.rows_seen

            if state.batch:
                self._flush(state, emit)
            emit(state.progress())
        except ParseCancelled:
            logger.info(
                "Parse cancelled rows_seen=%s chunks_emitted=%s",
                state.rows_seen,
                state.chunk_index,
            )
            return self._summary(state, cancelled=True)

        return self._summary(state)

    def _handle_row(
        self,
        state: ParseState,
        cells: list[str],
        expected_columns: int,
        positions: dict[str, int],
        line_number: int,
        emit: Callable[[OutboundMessage], None],
    ) -> None:
        if len(cells) != expected_columns:
            self._record_error(
                state,
                line_number,
                f"Expected {expected_columns} fields but found {len(cells)}",
            )
            return

        row = {name: cells[positions[name]] if name in positions else "" for name in self._fields}
        raw_timestamp = row.get(TIMESTAMP_FIELD, "").strip()
        if not raw_timestamp:
            state.total_skipped += 1
            return

        timestamp = parse_created_at(raw_timestamp)
        if timestamp is None:
            self._record_error(state, line_number, f"Invalid {TIMESTAMP_FIELD} value: {raw_timestamp}")
            return
        if not self._date_filter.contains(timestamp):
            state.total_skipped += 1
            return

        state.batch.append(row)
        state.total_parsed += 1
        if len(state.batch) >= self._chunk_size:
            self._flush(state, emit)

    def _record_error(self, state: ParseState, line_number: int, message: str) -> None:
        state.total_errors += 1
        if len(state.error_details) < self._max_error_details:
            state.error_details.append(RowError(row=line_number, message=message))

    @staticmethod
    def _flush(state: ParseState, emit: Callable[[OutboundMessage], None]) -> None:
        chunk = ChunkReady(events=state.batch, chunk_index=state.chunk_index)
        state.batch = []
        state.chunk_index += 1
        emit(chunk)

    @staticmethod
    def _sniff(handle: TextIO) -> type[csv.Dialect]:
        sample = handle.read(_SNIFF_BYTES)
        handle.seek(0)
        # Only whole lines; a truncated oversized row skews delimiter detection.
        complete = sample[: sample.rfind("\n") + 1] or sample
        try:
            return csv.Sniffer().sniff(complete, delimiters=_DELIMITERS)
        except csv.Error:
            return csv.excel

    @staticmethod
    def _summary(state: ParseState, *, cancelled: bool = False) -> ParseComplete:
        return ParseComplete(
            total_parsed=state.total_parsed,
            total_skipped=state.total_skipped,
            total_errors=state.total_errors,
            error_details=list(state.error_details),
            cancelled=cancelled,
        )
