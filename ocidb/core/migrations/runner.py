"""Database migration runner - executes pending migrations in order."""

import importlib.util
import logging
import re
from pathlib import Path
from types import ModuleType
from typing import Optional, cast

import aiosqlite

from ocidb.core.migrations import MigrationError
from ocidb.core.migrations.constants import INIT_FILE_NAME, MIGRATIONS_TABLE

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent

_MIGRATION_FILE_RE = re.compile(r"^\d{3}_[a-zA-Z0-9_]+\.py$")


def discover_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Migration versions found in migrations_dir, sorted (e.g. "002_drop_manifest_index_id")."""
    return sorted(
        f.stem for f in migrations_dir.glob("*.py") if _MIGRATION_FILE_RE.match(f.name) and f.name != INIT_FILE_NAME
    )


async def ensure_migrations_table(db: aiosqlite.Connection) -> None:
    await db.execute(f"""
        CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
            version TEXT PRIMARY KEY,
            applied_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)
    await db.commit()


async def get_applied_versions(db: aiosqlite.Connection) -> list[str]:
    """Applied migration versions in order; empty when nothing was ever applied."""
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (MIGRATIONS_TABLE,),
    )
    if await cursor.fetchone() is None:
        return []

    cursor = await db.execute(f"SELECT version FROM {MIGRATIONS_TABLE} ORDER BY version")
    rows = await cursor.fetchall()
    return [cast(str, row[0]) for row in rows]


async def list_pending_migrations(
    db: aiosqlite.Connection,
    migrations_dir: Path = MIGRATIONS_DIR,
    up_to: Optional[str] = None,
) -> list[str]:
    """Versions that run_pending_migrations would apply, in order."""
    applied = set(await get_applied_versions(db))
    available = discover_migrations(migrations_dir)

    if up_to is not None:
        if up_to not in available:
            raise MigrationError(f"Unknown migration version: {up_to}")
        available = [version for version in available if version <= up_to]

    return [version for version in available if version not in applied]


def _load_migration(migrations_dir: Path, version: str) -> ModuleType:
    migration_file = migrations_dir / f"{version}.py"
    spec = importlib.util.spec_from_file_location(version, migration_file)
    if spec is None or spec.loader is None:
        raise MigrationError(f"Failed to load migration: {version}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    if not hasattr(module, "up"):
        raise MigrationError(f"Migration {version} missing up() function")
    return module


async def _foreign_keys_enabled(db: aiosqlite.Connection) -> bool:
    cursor = await db.execute("PRAGMA foreign_keys")
    row = await cursor.fetchone()
    return bool(row[0]) if row else False


async def _check_foreign_keys(db: aiosqlite.Connection, version: str) -> None:
    cursor = await db.execute("PRAGMA foreign_key_check")
    violations = await cursor.fetchall()
    if not violations:
        return

    details = "; ".join(f"{row[0]} rowid={row[1]} -> {row[2]}" for row in violations[:5])
    raise MigrationError(f"Migration {version} left {len(violations)} foreign key violation(s): {details}")


async def apply_migration(db: aiosqlite.Connection, version: str, module: ModuleType) -> None:
    """Run one migration and record it, all-or-nothing.

    Foreign key enforcement is switched off for the duration so table rebuilds
    do not cascade into dependent rows; integrity is verified with
    ``PRAGMA foreign_key_check`` before commit instead.
    """
    # PRAGMA foreign_keys is a no-op inside a transaction
    await db.commit()
    fk_enabled = await _foreign_keys_enabled(db)
    await db.execute("PRAGMA foreign_keys=OFF")
    await db.execute("BEGIN")
    try:
        await module.up(db)  # type: ignore[misc]  # Dynamic module load
        await db.execute(
            f"INSERT INTO {MIGRATIONS_TABLE} (version) VALUES (?)",
            (version,),
        )
        await _check_foreign_keys(db, version)
        await db.execute("COMMIT")
    except Exception:
        if db.in_transaction:
            await db.execute("ROLLBACK")
        logger.error("Migration %s failed; rolled back", version)
        raise
    finally:
        await db.execute(f"PRAGMA foreign_keys={'ON' if fk_enabled else 'OFF'}")


async def run_pending_migrations(
    db: aiosqlite.Connection,
    migrations_dir: Path = MIGRATIONS_DIR,
    up_to: Optional[str] = None,
) -> int:
    """Run all pending migrations in order.

    Args:
        db: Database connection
        migrations_dir: Directory holding NNN_name.py migration modules
        up_to: Stop after this version (inclusive); None applies everything

    Returns:
        Number of migrations applied

    Raises:
        MigrationError: If a migration cannot be loaded or leaves broken references
    """
    await ensure_migrations_table(db)

    applied_count = 0
    for version in await list_pending_migrations(db, migrations_dir, up_to):
        logger.info("Applying migration: %s", version)

        module = _load_migration(migrations_dir, version)
        await apply_migration(db, version, module)

        logger.info("Migration applied: %s", version)
        applied_count += 1

    return applied_count
