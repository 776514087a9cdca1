"""
tests/test_import_parser.py

CSVImportParser row admission, chunking, progress and error capping.

All tests parse in-memory text; no threads.
"""

from __future__ import annotations

import io
from datetime import date

import pytest

from import_client.date_range import DateRangeError, DateRangeFilter
from import_client.messages import ChunkReady, OutboundMessage, ParseProgress
from import_client.parser import CSVImportParser
from tests.umami_csv import HEADER, export_row, render


def _filter(start: date = date(2024, 1, 1), end: date = date(2024, 6, 30)) -> DateRangeFilter:
    return DateRangeFilter.build(earliest_allowed_date=start, latest_allowed_date=end)


def _parse(
    text: str,
    *,
    chunk_size: int = 100,
    progress_interval: int = 1000,
    max_error_details: int = 100,
    date_filter: DateRangeFilter | None = None,
):
    emitted: list[OutboundMessage] = []
    parser = CSVImportParser(
        platform="umami",
        date_filter=date_filter or _filter(),
        chunk_size=chunk_size,
        progress_interval=progress_interval,
        max_error_details=max_error_details,
    )
    summary = parser.parse(io.StringIO(text, newline=""), emit=emitted.append)
    chunks = [message for message in emitted if isinstance(message, ChunkReady)]
    progress = [message for message in emitted if isinstance(message, ParseProgress)]
    return summary, chunks, progress


# ---------------------------------------------------------------------------
# Date range
# ---------------------------------------------------------------------------


class TestDateRangeFilter:
    def test_intersection_with_user_range(self) -> None:
        date_filter = DateRangeFilter.build(
            earliest_allowed_date="2024-01-01",
            latest_allowed_date="2024-06-30",
            start_date="2024-03-01",
            end_date="2024-12-31",
        )
        assert date_filter.start.date() == date(2024, 3, 1)
        assert date_filter.end.date() == date(2024, 6, 30)

    def test_empty_intersection_raises(self) -> None:
        with pytest.raises(DateRangeError):
            DateRangeFilter.build(
                earliest_allowed_date="2024-01-01",
                latest_allowed_date="2024-06-30",
                start_date="2024-07-01",
            )

    def test_invalid_date_raises(self) -> None:
        with pytest.raises(DateRangeError):
            DateRangeFilter.build(earliest_allowed_date="01/01/2024", latest_allowed_date="2024-06-30")


# ---------------------------------------------------------------------------
# Row admission
# ---------------------------------------------------------------------------


class TestRowAdmission:
    def test_rows_mapped_to_canonical_fields(self) -> None:
        text = render([export_row("2024-03-15 10:00:00", page_title="Pricing", event_type="1")])

        summary, chunks, _ = _parse(text)

        assert summary.total_parsed == 1
        event = chunks[0].events[0]
        assert event["session_id"] == "sess-1"
        assert event["created_at"] == "2024-03-15 10:00:00"
        assert event["page_title"] == "Pricing"
        assert not any(key.startswith("extra_") for key in event)

    def test_missing_timestamp_skipped_and_never_emitted(self) -> None:
        text = render([export_row("", session_id="no-ts"), export_row("2024-03-15 10:00:00")])

        summary, chunks, _ = _parse(text)

        assert summary.total_parsed == 1
        assert summary.total_skipped == 1
        assert summary.total_errors == 0
        assert all(event["session_id"] != "no-ts" for chunk in chunks for event in chunk.events)

    def test_out_of_range_rows_skipped(self) -> None:
        text = render(
            [
                export_row("2023-12-31 23:59:59"),
                export_row("2024-01-01 00:00:00"),
                export_row("2024-06-30 23:59:59"),
                export_row("2024-07-01 00:00:00"),
            ]
        )

        summary, _, _ = _parse(text)

        assert summary.total_parsed == 2
        assert summary.total_skipped == 2

    def test_unparseable_timestamp_is_an_error(self) -> None:
        text = render([export_row("2024-03-15 10:00:00"), export_row("15/03/2024")])

        summary, _, _ = _parse(text)

        assert summary.total_errors == 1
        assert summary.error_details[0].row == 3
        assert "15/03/2024" in summary.error_details[0].message

    def test_field_count_mismatch_is_an_error(self) -> None:
        text = render([export_row("2024-03-15 10:00:00")]) + "only,three,cells\n"

        summary, _, _ = _parse(text)

        assert summary.total_parsed == 1
        assert summary.total_errors == 1
        assert summary.error_details[0].message == f"Expected {len(HEADER)} fields but found 3"

    def test_row_rejected_by_csv_reader_is_an_error(self) -> None:
        text = render(
            [
                export_row("2024-03-15 10:00:00", session_id="s1"),
                export_row("2024-03-16 10:00:00", session_id="s2", page_title="x" * 200_000),
                export_row("2024-03-17 10:00:00", session_id="s3"),
            ]
        )

        summary, chunks, _ = _parse(text)

        assert summary.total_parsed == 2
        assert summary.total_errors == 1
        assert summary.error_details[0].row == 3
        assert summary.error_details[0].message.startswith("Unreadable row:")
        assert [row["session_id"] for row in chunks[0].events] == ["s1", "s3"]

    def test_error_details_are_capped(self) -> None:
        text = render([export_row("bad-1"), export_row("bad-2"), export_row("bad-3")])

        summary, _, _ = _parse(text, max_error_details=2)

        assert summary.total_errors == 3
        assert [detail.row for detail in summary.error_details] == [2, 3]

    def test_blank_lines_ignored(self) -> None:
        text = render([export_row("2024-03-15 10:00:00")]) + "\n\n"

        summary, _, _ = _parse(text)

        assert (summary.total_parsed, summary.total_skipped, summary.total_errors) == (1, 0, 0)

    def test_semicolon_delimited_export(self) -> None:
        text = render([export_row("2024-03-15 10:00:00"), export_row("2024-03-16 10:00:00")], delimiter=";")

        summary, chunks, _ = _parse(text)

        assert summary.total_parsed == 2
        assert chunks[0].events[1]["created_at"] == "2024-03-16 10:00:00"

    def test_empty_file(self) -> None:
        summary, chunks, _ = _parse("")
        assert summary.total_parsed == 0
        assert chunks == []


# ---------------------------------------------------------------------------
# Chunks and progress
# ---------------------------------------------------------------------------


class TestChunksAndProgress:
    def test_fixed_size_chunks_with_final_remainder(self) -> None:
        text = render([export_row(f"2024-03-{day:02d} 10:00:00") for day in range(1, 8)])

        summary, chunks, _ = _parse(text, chunk_size=3)

        assert [chunk.chunk_index for chunk in chunks] == [0, 1, 2]
        assert [len(chunk.events) for chunk in chunks] == [3, 3, 1]
        assert summary.total_parsed == 7

    def test_progress_every_interval_and_at_end(self) -> None:
        text = render([export_row(f"2024-03-{day:02d} 10:00:00") for day in range(1, 6)])

        _, _, progress = _parse(text, progress_interval=2)

        assert [message.parsed for message in progress] == [2, 4, 5]

    def test_cancel_stops_parse(self) -> None:
        text = render([export_row(f"2024-03-{day:02d} 10:00:00") for day in range(1, 6)])
        emitted: list[OutboundMessage] = []
        parser = CSVImportParser(platform="umami", date_filter=_filter(), chunk_size=1)
        calls = iter([False, False, True])

        summary = parser.parse(
            io.StringIO(text, newline=""),
            emit=emitted.append,
            should_cancel=lambda: next(calls, True),
        )

        assert summary.cancelled is True
        assert summary.total_parsed == 2
        assert len([message for message in emitted if isinstance(message, ChunkReady)]) == 2

    def test_unknown_platform_rejected(self) -> None:
        with pytest.raises(ValueError):
            CSVImportParser(platform="matomo", date_filter=_filter())
