"""
import_client/runner.py

Drives a full import: create the import server-side, parse the file on a
worker thread, upload chunks as batches, then mark the import complete.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any

from import_client.config import ImportClientSettings, get_import_client_settings
from import_client.messages import (
    ChunkReady,
    OutboundMessage,
    ParseComplete,
    ParseError,
    ParseProgress,
    RowError,
    StartParse,
)
from import_client.uploader import ImportAPIClient, ImportAPIError
from import_client.worker import ParserWorker

logger = logging.getLogger(__name__)

_OUTBOX_POLL_SECONDS = 0.25


class RunStatus(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ImportProgress:
    status: RunStatus = RunStatus.IDLE
    import_id: str | None = None
    parsed: int = 0
    skipped: int = 0
    errors: int = 0
    batches_uploaded: int = 0
    failed_batches: int = 0
    imported: int = 0
    skipped_due_to_quota: int = 0
    error_details: list[RowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "import_id": self.import_id,
            "parsed": self.parsed,
            "skipped": self.skipped,
            "errors": self.errors,
            "batches_uploaded": self.batches_uploaded,
            "failed_batches": self.failed_batches,
            "imported": self.imported,
            "skipped_due_to_quota": self.skipped_due_to_quota,
            "error_details": [{"row": e.row, "message": e.message} for e in self.error_details],
            "warnings": list(self.warnings),
            "message": self.message,
        }


class ImportAborted(Exception):
    def __init__(self, status: RunStatus, message: str) -> None:
        super().__init__(message)
        self.status = status


class ImportRunner:
    """
    Runs one file import end to end.

    Chunks are held back by one so the final chunk can be sent with an
    accurate ``total_batches``; every earlier batch carries a provisional
    total of ``batch_index + 2``.
    """

    def __init__(
        self,
        *,
        client: ImportAPIClient,
        site_id: int,
        file_path: Path,
        platform: str = "umami",
        start_date: date | None = None,
        end_date: date | None = None,
        settings: ImportClientSettings | None = None,
    ) -> None:
        self._client = client
        self._site_id = site_id
        self._file_path = Path(file_path)
        self._platform = platform
        self._start_date = start_date
        self._end_date = end_date
        self._settings = settings or get_import_client_settings()
        self._cancel_requested = threading.Event()
        self._worker: ParserWorker | None = None
        self.progress = ImportProgress()

    def cancel(self) -> None:
        self._cancel_requested.set()
        if self._worker is not None:
            self._worker.cancel()

    def run(self) -> ImportProgress:
        progress = self.progress
        try:
            created = self._client.create_import(
                site_id=self._site_id,
                file_name=self._file_path.name,
                platform=self._platform,
            )
        except ImportAPIError as exc:
            return self._finish(RunStatus.FAILED, f"Could not create import: {exc}")

        progress.import_id = created.import_id
        progress.status = RunStatus.PARSING
        logger.info(
            "Import created import_id=%s site_id=%s allowed=%s..%s",
            created.import_id,
            self._site_id,
            created.earliest_allowed_date,
            created.latest_allowed_date,
        )

        worker = ParserWorker(self._settings)
        self._worker = worker
        worker.start()
        worker.send(
            StartParse(
                file_path=self._file_path,
                site_id=self._site_id,
                import_id=created.import_id,
                platform=self._platform,
                earliest_allowed_date=created.earliest_allowed_date,
                latest_allowed_date=created.latest_allowed_date,
                start_date=self._start_date,
                end_date=self._end_date,
            )
        )
        if self._cancel_requested.is_set():
            worker.cancel()

        try:
            summary = self._consume(worker, created.import_id)
        except ImportAborted as exc:
            worker.cancel()
            worker.join(timeout=5)
            return self._finish(exc.status, str(exc))
        finally:
            self._worker = None

        worker.join(timeout=5)
        progress.parsed = summary.total_parsed
        progress.skipped = summary.total_skipped
        progress.errors = summary.total_errors
        progress.error_details = list(summary.error_details)

        try:
            self._client.complete_import(site_id=self._site_id, import_id=created.import_id)
        except ImportAPIError as exc:
            return self._finish(RunStatus.FAILED, f"Could not complete import: {exc}")

        return self._finish(
            RunStatus.COMPLETED,
            f"Imported {progress.imported} events in {progress.batches_uploaded} batches",
        )

    def _consume(self, worker: ParserWorker, import_id: str) -> ParseComplete:
        pending: ChunkReady | None = None
        while True:
            if self._cancel_requested.is_set():
                raise ImportAborted(RunStatus.CANCELLED, "Import cancelled")

            try:
                message: OutboundMessage = worker.outbox.get(timeout=_OUTBOX_POLL_SECONDS)
            except queue.Empty:
                if worker.is_alive:
                    continue
                # The worker may have queued its last messages just before exiting.
                try:
                    message = worker.outbox.get_nowait()
                except queue.Empty:
                    raise ImportAborted(RunStatus.FAILED, "Parser stopped without a final message") from None

            if isinstance(message, ParseProgress):
                self.progress.parsed = message.parsed
                self.progress.skipped = message.skipped
                self.progress.errors = message.errors
            elif isinstance(message, ChunkReady):
                if pending is not None:
                    self._upload(pending, import_id=import_id, total_batches=pending.chunk_index + 2)
                pending = message
            elif isinstance(message, ParseError):
                raise ImportAborted(RunStatus.FAILED, f"Parse failed: {message.message}")
            elif isinstance(message, ParseComplete):
                if pending is not None:
                    self._upload(pending, import_id=import_id, total_batches=pending.chunk_index + 1)
                return message

    def _upload(self, chunk: ChunkReady, *, import_id: str, total_batches: int) -> None:
        self.progress.status = RunStatus.UPLOADING
        attempts = max(1, self._settings.max_batch_attempts)
        for attempt in range(1, attempts + 1):
            if self._cancel_requested.is_set():
                raise ImportAborted(RunStatus.CANCELLED, "Import cancelled")
            try:
                result = self._client.submit_batch(
                    site_id=self._site_id,
                    import_id=import_id,
                    batch_index=chunk.chunk_index,
                    total_batches=total_batches,
                    events=chunk.events,
                )
            except ImportAPIError as exc:
                self.progress.failed_batches += 1
                if exc.status_code is not None and 400 <= exc.status_code < 500:
                    raise ImportAborted(
                        RunStatus.FAILED,
                        f"Batch {chunk.chunk_index} rejected: {exc}",
                    ) from exc
                logger.warning(
                    "Batch upload failed import_id=%s batch_index=%s attempt=%s/%s error=%s",
                    import_id,
                    chunk.chunk_index,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt == attempts:
                    raise ImportAborted(
                        RunStatus.FAILED,
                        f"Batch {chunk.chunk_index} failed after {attempts} attempts: {exc}",
                    ) from exc
                continue

            self.progress.batches_uploaded += 1
            self.progress.imported += result.imported_count
            self.progress.skipped_due_to_quota += result.skipped_due_to_quota
            self.progress.warnings.extend(result.warnings)
            logger.info(
                "Batch uploaded import_id=%s batch_index=%s imported=%s skipped_due_to_quota=%s duplicate=%s",
                import_id,
                chunk.chunk_index,
                result.imported_count,
                result.skipped_due_to_quota,
                result.duplicate,
            )
            self.progress.status = RunStatus.PARSING
            return

    def _finish(self, status: RunStatus, message: str) -> ImportProgress:
        self.progress.status = status
        self.progress.message = message
        log = logger.info if status == RunStatus.COMPLETED else logger.warning
        log("Import run finished import_id=%s status=%s message=%s", self.progress.import_id, status.value, message)
        return self.progress
