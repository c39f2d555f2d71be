"""`ocidb` command: apply and inspect catalog schema migrations."""

import argparse
import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite

from ocidb import __version__
from ocidb.config import config
from ocidb.constants import MEMORY_DB_PATH
from ocidb.core.migrations import MigrationError
from ocidb.core.migrations.runner import get_applied_versions, list_pending_migrations, run_pending_migrations
from ocidb.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ocidb", description="Manage the OCI image catalog database schema.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", help="Database path (default: OCIDB_DB_PATH or database.path from config)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Override OCIDB_LOG_LEVEL",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Apply pending migrations")
    migrate.add_argument("--to", dest="up_to", metavar="VERSION", help="Stop after this migration (inclusive)")

    status = subparsers.add_parser("status", help="Show applied and pending migrations")
    status.add_argument("--json", action="store_true", help="Emit machine-readable output")

    return parser


async def _connect(db_path: str) -> aiosqlite.Connection:
    if db_path != MEMORY_DB_PATH:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(db_path)
    await db.execute(f"PRAGMA busy_timeout={int(config.database.busy_timeout_ms)}")
    await db.execute("PRAGMA foreign_keys=ON")
    return db


async def _migrate(db_path: str, up_to: Optional[str]) -> int:
    db = await _connect(db_path)
    try:
        applied = await run_pending_migrations(db, up_to=up_to)
    finally:
        await db.close()

    print(f"Applied {applied} migration(s) to {db_path}")
    return 0


async def _status(db_path: str, as_json: bool) -> int:
    db = await _connect(db_path)
    try:
        applied = await get_applied_versions(db)
        pending = await list_pending_migrations(db)
    finally:
        await db.close()

    if as_json:
        print(json.dumps({"applied": applied, "pending": pending}))
        return 0

    for version in applied:
        print(f"[applied] {version}")
    for version in pending:
        print(f"[pending] {version}")
    if not pending:
        print("Schema is up to date")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    db_path = str(Path(args.db or config.database.path).expanduser())

    try:
        if args.command == "migrate":
            return asyncio.run(_migrate(db_path, args.up_to))
        return asyncio.run(_status(db_path, args.json))
    except (MigrationError, sqlite3.Error) as exc:
        logger.error("ocidb %s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
