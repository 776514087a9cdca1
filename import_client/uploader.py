"""
import_client/uploader.py

HTTP client for the site import API with retry and exponential backoff.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import requests

from import_client.config import ImportClientSettings, get_import_client_settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class ImportAPIError(RuntimeError):
    """
    Raised when the import API rejects a request or retries are exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.detail = detail or {}


@dataclass(frozen=True)
class CreatedImport:
    import_id: str
    earliest_allowed_date: date
    latest_allowed_date: date
    historical_window_months: int


@dataclass(frozen=True)
class BatchUpload:
    imported_count: int
    skipped_due_to_quota: int
    message: str
    duplicate: bool = False
    warnings: list[str] = field(default_factory=list)


class ImportAPIClient:
    def __init__(
        self,
        *,
        base_url: str,
        user_id: str,
        settings: ImportClientSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        http_settings = settings or get_import_client_settings()
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"X-User-Id": user_id})
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier

    def create_import(self, *, site_id: int, file_name: str, platform: str = "umami") -> CreatedImport:
        payload = self._request_json(
            method="POST",
            path=f"/sites/{site_id}/imports",
            json={"file_name": file_name, "platform": platform},
        )
        date_range = payload["allowed_date_range"]
        return CreatedImport(
            import_id=str(payload["import_id"]),
            earliest_allowed_date=date.fromisoformat(date_range["earliest_allowed_date"]),
            latest_allowed_date=date.fromisoformat(date_range["latest_allowed_date"]),
            historical_window_months=int(date_range["historical_window_months"]),
        )

    def submit_batch(
        self,
        *,
        site_id: int,
        import_id: str,
        batch_index: int,
        total_batches: int,
        events: list[dict[str, str]],
    ) -> BatchUpload:
        payload = self._request_json(
            method="POST",
            path=f"/sites/{site_id}/imports/{import_id}/batches",
            json={
                "import_id": import_id,
                "batch_index": batch_index,
                "total_batches": total_batches,
                "events": events,
            },
        )
        return BatchUpload(
            imported_count=int(payload.get("imported_count", 0)),
            skipped_due_to_quota=int(payload.get("skipped_due_to_quota", 0)),
            message=str(payload.get("message", "")),
            duplicate=bool(payload.get("duplicate", False)),
            warnings=list(payload.get("warnings", [])),
        )

    def complete_import(self, *, site_id: int, import_id: str) -> dict[str, Any]:
        return self._request_json(method="POST", path=f"/sites/{site_id}/imports/{import_id}/complete")

    def list_imports(self, *, site_id: int) -> list[dict[str, Any]]:
        payload = self._request_json(method="GET", path=f"/sites/{site_id}/imports")
        return list(payload.get("imports", []))

    def delete_import(self, *, site_id: int, import_id: str) -> dict[str, Any]:
        return self._request_json(method="DELETE", path=f"/sites/{site_id}/imports/{import_id}")

    def _request_json(
        self,
        *,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """
        Execute an API request with exponential backoff on 429/5xx, timeouts and connection errors.
        """

        url = f"{self._base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    json=json,
                    timeout=self._timeout_seconds,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc
            else:
                if response.status_code < 400:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise ImportAPIError(
                            f"Response from {path} was not valid JSON.",
                            status_code=response.status_code,
                        ) from exc

                error = self._to_error(response)
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Import API request failed method=%s status=%s error=%s url=%s",
                        method,
                        response.status_code,
                        error.error_code,
                        url,
                    )
                    raise error
                last_error = error

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Import API request retry method=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                method,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            time.sleep(backoff_seconds)

        logger.error("Import API request exhausted retries method=%s url=%s error=%s", method, url, last_error)
        if isinstance(last_error, ImportAPIError):
            raise last_error
        raise ImportAPIError(f"Request to {path} failed after retries: {last_error}") from last_error

    @staticmethod
    def _to_error(response: requests.Response) -> ImportAPIError:
        detail: dict[str, Any] = {}
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            raw_detail = body.get("detail", body)
            if isinstance(raw_detail, dict):
                detail = raw_detail
            elif raw_detail is not None:
                detail = {"message": str(raw_detail)}

        message = str(detail.get("message") or response.reason or f"HTTP {response.status_code}")
        error_code = detail.get("error")
        return ImportAPIError(
            message,
            status_code=response.status_code,
            error_code=str(error_code) if error_code is not None else None,
            detail=detail,
        )
