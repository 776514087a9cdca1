"""
import_client/worker.py

Parser worker thread: one inbound control queue (start/cancel) and one
bounded outbound queue (progress/chunk/complete/error).

A full outbound queue blocks chunk delivery, which pauses parsing until the
uploader catches up. Progress messages are dropped instead of blocking.
"""

from __future__ import annotations

import csv
import logging
import queue
import threading

from import_client.config import ImportClientSettings, get_import_client_settings
from import_client.date_range import DateRangeError, DateRangeFilter
from import_client.messages import (
    CancelParse,
    InboundMessage,
    OutboundMessage,
    ParseComplete,
    ParseError,
    ParseProgress,
    StartParse,
)
from import_client.parser import CSVImportParser, ParseCancelled

logger = logging.getLogger(__name__)

_PUT_POLL_SECONDS = 0.1


class ParserWorker:
    """
    Runs CSVImportParser on a background thread and communicates only through queues.

    Example:
        worker = ParserWorker()
        worker.start()
        worker.send(StartParse(...))
        message = worker.outbox.get()
    """

    def __init__(self, settings: ImportClientSettings | None = None) -> None:
        self._settings = settings or get_import_client_settings()
        self.inbox: queue.Queue[InboundMessage] = queue.Queue()
        self.outbox: queue.Queue[OutboundMessage] = queue.Queue(maxsize=self._settings.channel_capacity)
        self._cancelled = threading.Event()
        self._thread: threading.Thread | None = None
        self.dropped_progress = 0

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Parser worker already started")
        self._thread = threading.Thread(target=self._run, name="import-parser", daemon=True)
        self._thread.start()

    def send(self, message: InboundMessage) -> None:
        if isinstance(message, CancelParse):
            self._cancelled.set()
        self.inbox.put(message)

    def cancel(self) -> None:
        self.send(CancelParse())

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        message = self.inbox.get()
        if isinstance(message, CancelParse):
            logger.info("Parser worker cancelled before start")
            return
        if not isinstance(message, StartParse):
            logger.warning("Parser worker ignoring unknown message type=%s", type(message).__name__)
            return

        try:
            summary = self._parse(message)
        except ParseCancelled:
            return
        except (csv.Error, DateRangeError, ValueError, OSError) as exc:
            logger.error("Parse failed file=%s error=%s", message.file_path, exc)
            self._put_final(ParseError(message=str(exc)))
            return

        if summary.cancelled:
            return
        self._put_final(summary)

    def _parse(self, start: StartParse) -> ParseComplete:
        date_filter = DateRangeFilter.build(
            earliest_allowed_date=start.earliest_allowed_date,
            latest_allowed_date=start.latest_allowed_date,
            start_date=start.start_date,
            end_date=start.end_date,
        )
        parser = CSVImportParser(
            platform=start.platform,
            date_filter=date_filter,
            chunk_size=self._settings.chunk_size,
            progress_interval=self._settings.progress_interval,
            max_error_details=self._settings.max_error_details,
        )
        logger.info(
            "Parse started import_id=%s site_id=%s file=%s",
            start.import_id,
            start.site_id,
            start.file_path,
        )
        with open(start.file_path, encoding="utf-8-sig", newline="") as handle:
            return parser.parse(handle, emit=self._emit, should_cancel=self._poll_cancel)

    def _poll_cancel(self) -> bool:
        while True:
            try:
                message = self.inbox.get_nowait()
            except queue.Empty:
                break
            if isinstance(message, CancelParse):
                self._cancelled.set()
        return self._cancelled.is_set()

    def _emit(self, message: OutboundMessage) -> None:
        if isinstance(message, ParseProgress):
            try:
                self.outbox.put_nowait(message)
            except queue.Full:
                self.dropped_progress += 1
            return

        while True:
            if self._poll_cancel():
                raise ParseCancelled()
            try:
                self.outbox.put(message, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def _put_final(self, message: ParseComplete | ParseError) -> None:
        while not self._poll_cancel():
            try:
                self.outbox.put(message, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                continue
