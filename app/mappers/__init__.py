"""
app/mappers package marker.
"""

from __future__ import annotations

from app.domain.site_import import ImportPlatform
from app.mappers.umami import UMAMI_FIELDS, UmamiImportMapper, derive_channel, parse_umami_timestamp

_MAPPERS: dict[ImportPlatform, UmamiImportMapper] = {
    ImportPlatform.UMAMI: UmamiImportMapper(),
}


def get_import_mapper(platform: ImportPlatform) -> UmamiImportMapper:
    """
    Return the registered mapper for ``platform``.
    """

    try:
        return _MAPPERS[platform]
    except KeyError as exc:
        raise ValueError(f"No import mapper registered for platform '{platform}'.") from exc


__all__ = [
    "UMAMI_FIELDS",
    "UmamiImportMapper",
    "derive_channel",
    "get_import_mapper",
    "parse_umami_timestamp",
]
