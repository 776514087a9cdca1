"""
app/mappers/umami.py

Maps raw Umami export rows onto the canonical event schema.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from urllib.parse import parse_qs

from app.domain.canonical_event import CanonicalEventInput
from db.models.event import EventType

logger = logging.getLogger(__name__)

UMAMI_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

UMAMI_FIELDS: tuple[str, ...] = (
    "session_id",
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
    "referrer_path",
    "referrer_query",
    "referrer_domain",
    "page_title",
    "event_type",
    "event_name",
    "distinct_id",
    "created_at",
)

BROWSER_NAMES: dict[str, str] = {
    "android": "Android Browser",
    "aol": "AOL",
    "chrome": "Chrome",
    "chromium-webview": "Chrome WebView",
    "crios": "Chrome",
    "edge": "Edge",
    "edge-chromium": "Edge",
    "edge-ios": "Edge",
    "facebook": "Facebook",
    "firefox": "Firefox",
    "fxios": "Firefox",
    "ie": "Internet Explorer",
    "instagram": "Instagram",
    "ios": "Mobile Safari",
    "ios-webview": "Mobile Safari",
    "opera": "Opera",
    "opera-mini": "Opera Mini",
    "safari": "Safari",
    "samsung": "Samsung Internet",
    "silk": "Silk",
    "yandexbrowser": "Yandex",
}

OPERATING_SYSTEMS: dict[str, tuple[str, str]] = {
    "android os": ("Android", ""),
    "chrome os": ("Chrome OS", ""),
    "ios": ("iOS", ""),
    "linux": ("Linux", ""),
    "mac os": ("macOS", ""),
    "windows 10": ("Windows", "10"),
    "windows 7": ("Windows", "7"),
    "windows 8": ("Windows", "8"),
    "windows 8.1": ("Windows", "8.1"),
    "windows xp": ("Windows", "XP"),
    "windows vista": ("Windows", "Vista"),
}

DEVICE_TYPES: dict[str, str] = {
    "desktop": "Desktop",
    "laptop": "Desktop",
    "mobile": "Mobile",
    "tablet": "Tablet",
}

SEARCH_ENGINE_DOMAINS: tuple[str, ...] = (
    "google.",
    "bing.com",
    "duckduckgo.com",
    "yahoo.",
    "yandex.",
    "baidu.com",
    "ecosia.org",
    "search.brave.com",
)

SOCIAL_DOMAINS: tuple[str, ...] = (
    "facebook.com",
    "instagram.com",
    "linkedin.com",
    "lnkd.in",
    "reddit.com",
    "t.co",
    "twitter.com",
    "x.com",
    "youtube.com",
    "pinterest.",
    "tiktok.com",
    "news.ycombinator.com",
)

PAID_MEDIUMS = {"cpc", "ppc", "paid", "paidsearch", "paid_search"}
SOCIAL_MEDIUMS = {"social", "social-network", "social_media", "sm"}
EMAIL_MEDIUMS = {"email", "e-mail", "newsletter"}


def parse_umami_timestamp(value: str | None) -> datetime | None:
    """
    Parse an Umami ``created_at`` value (``YYYY-MM-DD HH:MM:SS``, UTC).
    """

    if not value or not value.strip():
        return None
    try:
        parsed = datetime.strptime(value.strip(), UMAMI_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _parse_screen(value: str) -> tuple[int, int]:
    width, _, height = value.lower().partition("x")
    try:
        return max(0, int(width)), max(0, int(height))
    except ValueError:
        return 0, 0


def _strip_query_prefix(value: str) -> str:
    return value[1:] if value.startswith("?") else value


def _domain_matches(domain: str, patterns: Sequence[str]) -> bool:
    bare = domain[4:] if domain.startswith("www.") else domain
    for pattern in patterns:
        if pattern.endswith("."):
            if bare.startswith(pattern) or f".{pattern}" in f".{bare}":
                return True
        elif bare == pattern or bare.endswith(f".{pattern}"):
            return True
    return False


def derive_channel(*, referrer_domain: str, hostname: str, querystring: str) -> str:
    """
    Classify traffic into a marketing channel from UTM parameters and the referrer.
    """

    params = parse_qs(querystring, keep_blank_values=False)
    medium = (params.get("utm_medium") or [""])[0].strip().lower()
    source = (params.get("utm_source") or [""])[0].strip().lower()
    domain = referrer_domain.lower()

    if medium in PAID_MEDIUMS:
        return "Paid Search"
    if medium in EMAIL_MEDIUMS or source in EMAIL_MEDIUMS:
        return "Email"
    if medium in SOCIAL_MEDIUMS:
        return "Organic Social"
    if not domain:
        return "Direct"
    if hostname and (domain == hostname.lower() or domain.endswith(f".{hostname.lower()}")):
        return "Internal"
    if _domain_matches(domain, SEARCH_ENGINE_DOMAINS):
        return "Organic Search"
    if _domain_matches(domain, SOCIAL_DOMAINS):
        return "Organic Social"
    return "Referral"


class UmamiImportMapper:
    """
    Transforms Umami website-event export rows into canonical events.
    """

    platform = "umami"

    def event_timestamp(self, row: Mapping[str, str]) -> datetime | None:
        return parse_umami_timestamp(row.get("created_at"))

    def transform(
        self,
        rows: Sequence[Mapping[str, str]],
        *,
        site_id: int,
        import_id: uuid.UUID | None,
    ) -> list[CanonicalEventInput]:
        """
        Map rows to canonical events; rows without a parseable timestamp are dropped.
        """

        events: list[CanonicalEventInput] = []
        dropped = 0
        for row in rows:
            event = self.transform_row(row, site_id=site_id, import_id=import_id)
            if event is None:
                dropped += 1
                continue
            events.append(event)

        if dropped:
            logger.debug("Dropped Umami rows without a valid timestamp dropped=%s kept=%s", dropped, len(events))
        return events

    def transform_row(
        self,
        row: Mapping[str, str],
        *,
        site_id: int,
        import_id: uuid.UUID | None,
    ) -> CanonicalEventInput | None:
        timestamp = self.event_timestamp(row)
        if timestamp is None:
            return None

        hostname = _clean(row.get("hostname"))
        querystring = _strip_query_prefix(_clean(row.get("url_query")))
        referrer_domain = _clean(row.get("referrer_domain"))
        session_id = _clean(row.get("session_id"))
        distinct_id = _clean(row.get("distinct_id"))
        os_name, os_version = self._operating_system(_clean(row.get("os")))
        width, height = _parse_screen(_clean(row.get("screen")))
        is_custom = _clean(row.get("event_type")) == "2"

        return CanonicalEventInput(
            site_id=site_id,
            import_id=import_id,
            timestamp=timestamp,
            type=EventType.CUSTOM_EVENT if is_custom else EventType.PAGEVIEW,
            event_name=_clean(row.get("event_name")) if is_custom else "",
            session_id=session_id,
            user_id=distinct_id or session_id,
            hostname=hostname,
            pathname=_clean(row.get("url_path")) or "/",
            querystring=querystring,
            page_title=_clean(row.get("page_title")),
            referrer=self._referrer(
                referrer_domain,
                _clean(row.get("referrer_path")),
                _strip_query_prefix(_clean(row.get("referrer_query"))),
            ),
            channel=derive_channel(
                referrer_domain=referrer_domain,
                hostname=hostname,
                querystring=querystring,
            ),
            browser=self._browser(_clean(row.get("browser"))),
            operating_system=os_name,
            operating_system_version=os_version,
            device_type=DEVICE_TYPES.get(_clean(row.get("device")).lower(), ""),
            screen_width=width,
            screen_height=height,
            language=_clean(row.get("language")),
            country=_clean(row.get("country")).upper(),
            region=self._region(_clean(row.get("country")), _clean(row.get("region"))),
            city=_clean(row.get("city")),
        )

    @staticmethod
    def _browser(value: str) -> str:
        if not value:
            return ""
        return BROWSER_NAMES.get(value.lower(), value.title())

    @staticmethod
    def _operating_system(value: str) -> tuple[str, str]:
        if not value:
            return "", ""
        known = OPERATING_SYSTEMS.get(value.lower())
        if known is not None:
            return known
        return value, ""

    @staticmethod
    def _referrer(domain: str, path: str, query: str) -> str:
        if not domain:
            return ""
        if path and not path.startswith("/"):
            path = f"/{path}"
        url = f"https://{domain}{path}"
        return f"{url}?{query}" if query else url

    @staticmethod
    def _region(country: str, region: str) -> str:
        # Umami exports the ISO 3166-2 subdivision without its country prefix.
        if not region:
            return ""
        if not country or "-" in region:
            return region.upper()
        return f"{country.upper()}-{region.upper()}"
