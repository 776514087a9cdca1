"""
Builders for Umami-shaped export files used by the client tests.
"""

from __future__ import annotations

from pathlib import Path

from import_client.mappings import UMAMI_HEADERS

HEADER = [name or f"extra_{index}" for index, name in enumerate(UMAMI_HEADERS)]


def export_row(created_at: str, session_id: str = "sess-1", **fields: str) -> list[str]:
    cells = [""] * len(HEADER)
    values = {"session_id": session_id, "hostname": "example.com", "url_path": "/", "created_at": created_at}
    values.update(fields)
    for name, value in values.items():
        cells[HEADER.index(name)] = value
    return cells


def render(rows: list[list[str]], delimiter: str = ",") -> str:
    lines = [delimiter.join(HEADER)]
    lines.extend(delimiter.join(cells) for cells in rows)
    return "\n".join(lines) + "\n"


def write_export(path: Path, rows: list[list[str]], delimiter: str = ",") -> Path:
    path.write_text(render(rows, delimiter), encoding="utf-8")
    return path
