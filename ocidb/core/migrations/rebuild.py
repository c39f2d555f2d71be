"""Declarative schema steps for SQLite migrations.

SQLite cannot drop a column that takes part in a foreign key, so such changes
are expressed as a shadow-table rebuild: create ``<table>_new`` with the target
shape, copy rows by column name, drop the original, rename the shadow and
recreate the secondary indexes that the drop discarded.

Steps are grouped in a MigrationPlan and ordered by their declared
dependencies, so "drop the referencing column before the referenced table"
is stated rather than implied by statement position.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol, Sequence, cast

import aiosqlite

from ocidb.core.migrations import MigrationError
from ocidb.core.migrations.constants import SHADOW_SUFFIX

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(name: str) -> str:
    """Return name unchanged if it is a plain SQL identifier."""
    if not _IDENTIFIER_RE.match(name):
        raise MigrationError(f"Invalid SQL identifier: {name!r}")
    return name


async def table_columns(db: aiosqlite.Connection, table: str) -> list[str]:
    """Column names of table in declaration order (empty if the table is missing)."""
    cursor = await db.execute(f"PRAGMA table_info({_identifier(table)})")
    rows = await cursor.fetchall()
    return [cast(str, row[1]) for row in rows]


async def table_exists(db: aiosqlite.Connection, table: str) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,),
    )
    return await cursor.fetchone() is not None


async def index_exists(db: aiosqlite.Connection, index: str) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?",
        (index,),
    )
    return await cursor.fetchone() is not None


@dataclass(frozen=True)
class ColumnSpec:
    """One column of a target table shape."""

    name: str
    definition: str  # type and column constraints, e.g. "INTEGER NOT NULL"

    @property
    def required(self) -> bool:
        """True when rows cannot be copied without a source value for this column."""
        clause = self.definition.upper()
        return "NOT NULL" in clause and "DEFAULT" not in clause and "PRIMARY KEY" not in clause

    def render(self) -> str:
        return f"{_identifier(self.name)} {self.definition}"


@dataclass(frozen=True)
class IndexSpec:
    """Secondary index definition."""

    name: str
    table: str
    columns: tuple[str, ...]
    unique: bool = False

    def create_sql(self) -> str:
        unique = "UNIQUE " if self.unique else ""
        columns = ", ".join(_identifier(column) for column in self.columns)
        return (
            f"CREATE {unique}INDEX IF NOT EXISTS {_identifier(self.name)} "
            f"ON {_identifier(self.table)}({columns})"
        )


class Step(Protocol):
    """A single schema change inside a MigrationPlan."""

    name: str
    after: tuple[str, ...]

    async def apply(self, db: aiosqlite.Connection) -> None: ...


@dataclass
class RebuildTable:
    """Rebuild a table into a new shape through a shadow table.

    The column list is the complete target shape: columns present on the
    current table but absent here are dropped along with their values.
    """

    table: str
    columns: tuple[ColumnSpec, ...]
    constraints: tuple[str, ...] = ()
    indexes: tuple[IndexSpec, ...] = ()
    after: tuple[str, ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"rebuild_{self.table}"
        if not self.columns:
            raise MigrationError(f"Rebuild of {self.table} declares no columns")

    @property
    def shadow_table(self) -> str:
        return f"{self.table}{SHADOW_SUFFIX}"

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def create_sql(self) -> str:
        """DDL for the shadow table holding the target shape."""
        body = [column.render() for column in self.columns]
        body.extend(self.constraints)
        joined = ",\n    ".join(body)
        return f"CREATE TABLE IF NOT EXISTS {_identifier(self.shadow_table)} (\n    {joined}\n)"

    def copy_sql(self, source_columns: Sequence[str]) -> str:
        """Row copy from the original into the shadow, projected by column name."""
        shared = [name for name in self.column_names if name in source_columns]
        column_list = ", ".join(_identifier(name) for name in shared)
        return (
            f"INSERT INTO {_identifier(self.shadow_table)} ({column_list}) "
            f"SELECT {column_list} FROM {_identifier(self.table)}"
        )

    async def apply(self, db: aiosqlite.Connection) -> None:
        source_columns = await table_columns(db, self.table)
        if not source_columns:
            raise MigrationError(f"Cannot rebuild {self.table}: table does not exist")

        if source_columns == self.column_names:
            logger.info("Table %s already has target shape; skipping rebuild", self.table)
            await self._ensure_indexes(db)
            return

        missing = [column.name for column in self.columns if column.required and column.name not in source_columns]
        if missing:
            raise MigrationError(f"Cannot rebuild {self.table}: source lacks required columns {', '.join(missing)}")

        if not any(name in source_columns for name in self.column_names):
            raise MigrationError(f"Cannot rebuild {self.table}: no target column exists on the source table")

        dropped = [name for name in source_columns if name not in self.column_names]

        # Leftover shadow from an aborted attempt
        await db.execute(f"DROP TABLE IF EXISTS {_identifier(self.shadow_table)}")
        await db.execute(self.create_sql())
        await db.execute(self.copy_sql(source_columns))
        await db.execute(f"DROP TABLE {_identifier(self.table)}")
        await db.execute(f"ALTER TABLE {_identifier(self.shadow_table)} RENAME TO {_identifier(self.table)}")
        await self._ensure_indexes(db)

        if dropped:
            logger.info("Rebuilt %s, dropped columns: %s", self.table, ", ".join(dropped))
        else:
            logger.info("Rebuilt %s", self.table)

    async def _ensure_indexes(self, db: aiosqlite.Connection) -> None:
        for index in self.indexes:
            await db.execute(index.create_sql())


@dataclass
class CreateIndex:
    """Create a secondary index if it is not there yet."""

    index: IndexSpec
    after: tuple[str, ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"create_{self.index.name}"

    async def apply(self, db: aiosqlite.Connection) -> None:
        await db.execute(self.index.create_sql())


@dataclass
class DropTable:
    """Drop a table if it still exists."""

    table: str
    after: tuple[str, ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"drop_{self.table}"

    async def apply(self, db: aiosqlite.Connection) -> None:
        if not await table_exists(db, self.table):
            logger.info("Table %s already absent", self.table)
        await db.execute(f"DROP TABLE IF EXISTS {_identifier(self.table)}")


@dataclass
class MigrationPlan:
    """Dependency-ordered set of schema steps applied on one connection."""

    steps: Sequence[Step] = field(default_factory=list)

    def ordered(self) -> list[Step]:
        """Steps sorted so each runs after everything it names in ``after``.

        Steps without ordering constraints between them keep declaration order.

        Raises:
            MigrationError: On duplicate names, unknown dependencies or cycles
        """
        names: set[str] = set()
        for step in self.steps:
            if step.name in names:
                raise MigrationError(f"Duplicate migration step: {step.name}")
            names.add(step.name)

        for step in self.steps:
            unknown = [dep for dep in step.after if dep not in names]
            if unknown:
                raise MigrationError(f"Step {step.name} depends on unknown steps: {', '.join(unknown)}")

        ordered: list[Step] = []
        done: set[str] = set()
        remaining = list(self.steps)
        while remaining:
            ready = next((step for step in remaining if all(dep in done for dep in step.after)), None)
            if ready is None:
                cycle = ", ".join(step.name for step in remaining)
                raise MigrationError(f"Dependency cycle between steps: {cycle}")
            ordered.append(ready)
            done.add(ready.name)
            remaining.remove(ready)
        return ordered

    async def apply(self, db: aiosqlite.Connection) -> None:
        for step in self.ordered():
            logger.debug("Applying step: %s", step.name)
            await step.apply(db)
