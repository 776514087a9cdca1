"""
Import an analytics export file into a site from the CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
from datetime import date
from pathlib import Path

from import_client.date_range import DateRangeError, parse_date
from import_client.runner import ImportRunner, RunStatus
from import_client.uploader import ImportAPIClient


def _date_arg(value: str) -> date:
    try:
        return parse_date(value, label="date")
    except DateRangeError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="Upload an analytics export to a site import.")
    parser.add_argument("file", type=Path, help="Path to the exported CSV file.")
    parser.add_argument("--site-id", dest="site_id", type=int, required=True, help="Target site id.")
    parser.add_argument(
        "--api-url",
        dest="api_url",
        default=os.getenv("IMPORT_API_URL", "http://127.0.0.1:8000"),
        help="Base URL of the import API.",
    )
    parser.add_argument(
        "--user-id",
        dest="user_id",
        default=os.getenv("IMPORT_USER_ID"),
        help="Caller identity sent as X-User-Id.",
    )
    parser.add_argument("--platform", dest="platform", default="umami", help="Export format.")
    parser.add_argument("--start-date", dest="start_date", type=_date_arg, default=None, help="YYYY-MM-DD")
    parser.add_argument("--end-date", dest="end_date", type=_date_arg, default=None, help="YYYY-MM-DD")
    args = parser.parse_args()

    if not args.user_id:
        parser.error("--user-id or IMPORT_USER_ID is required")
    if not args.file.is_file():
        parser.error(f"File not found: {args.file}")

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    runner = ImportRunner(
        client=ImportAPIClient(base_url=args.api_url, user_id=args.user_id),
        site_id=args.site_id,
        file_path=args.file,
        platform=args.platform,
        start_date=args.start_date,
        end_date=args.end_date,
    )
    signal.signal(signal.SIGINT, lambda _signum, _frame: runner.cancel())

    progress = runner.run()
    print(json.dumps(progress.to_dict(), indent=2))
    return 0 if progress.status is RunStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
