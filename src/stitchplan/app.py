from __future__ import annotations

import argparse
import logging
from pathlib import Path

from nicegui import ui

from stitchplan.data.db import Db
from stitchplan.data.repository import Repository
from stitchplan.logging_conf import configure_logging
from stitchplan.settings import Settings, default_db_path
from stitchplan.ui.pages import register_pages

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StitchPlan sewing planner")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument(
        "--trace-planning",
        action="store_true",
        help="Log every capacity search attempt and timeline shift",
    )
    return parser


def main() -> None:
    args = build_arg_parser().parse_args()
    settings = Settings(
        db_path=args.db or default_db_path(),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )
    configure_logging(settings.log_level, trace_planning=args.trace_planning)

    db = Db(settings.db_path)
    db.ensure_schema()
    logger.info("Using database %s", settings.db_path)

    repo = Repository(db)
    register_pages(repo)

    ui.run(host=settings.host, port=settings.port, title=settings.title, reload=False)


if __name__ in {"__main__", "__mp_main__"}:
    main()
