"""
import_client/mappings.py

Positional header mappings for supported export formats. Columns mapped to
None keep their original header and are dropped before upload.
"""

from __future__ import annotations

UMAMI_HEADERS: tuple[str | None, ...] = (
    None,
    "session_id",
    None,
    None,
    "hostname",
    "browser",
    "os",
    "device",
    "screen",
    "language",
    "country",
    "region",
    "city",
    "url_path",
    "url_query",
    None,
    None,
    None,
    None,
    None,
    "referrer_path",
    "referrer_query",
    "referrer_domain",
    "page_title",
    None,
    None,
    None,
    None,
    None,
    None,
    "event_type",
    "event_name",
    None,
    "distinct_id",
    "created_at",
    None,
)

UMAMI_FIELDS: tuple[str, ...] = tuple(name for name in UMAMI_HEADERS if name is not None)

PLATFORM_HEADERS: dict[str, tuple[str | None, ...]] = {
    "umami": UMAMI_HEADERS,
}

TIMESTAMP_FIELD = "created_at"


def map_headers(platform: str, headers: list[str]) -> list[str]:
    """
    Rename source headers by position; unmapped positions keep the source name.
    """

    try:
        positional = PLATFORM_HEADERS[platform]
    except KeyError as exc:
        raise ValueError(f"Unsupported import platform '{platform}'.") from exc

    mapped: list[str] = []
    for index, header in enumerate(headers):
        name = positional[index] if index < len(positional) else None
        mapped.append(name or header)
    return mapped


def platform_fields(platform: str) -> tuple[str, ...]:
    positional = PLATFORM_HEADERS.get(platform, ())
    return tuple(name for name in positional if name is not None)
