"""Unit tests for the declarative rebuild steps and plan ordering."""

import aiosqlite
import pytest

from ocidb.core.migrations import MigrationError
from ocidb.core.migrations.rebuild import (
    ColumnSpec,
    CreateIndex,
    DropTable,
    IndexSpec,
    MigrationPlan,
    RebuildTable,
    index_exists,
    table_columns,
    table_exists,
)


def _rebuild(**overrides) -> RebuildTable:
    params = {
        "table": "blobs",
        "columns": (
            ColumnSpec("id", "INTEGER PRIMARY KEY"),
            ColumnSpec("digest", "TEXT NOT NULL"),
            ColumnSpec("size_bytes", "INTEGER NOT NULL DEFAULT 0"),
            ColumnSpec("note", "TEXT"),
        ),
        "indexes": (IndexSpec("idx_blobs_digest", "blobs", ("digest",), unique=True),),
    }
    params.update(overrides)
    return RebuildTable(**params)


class TestColumnSpec:
    def test_required_only_without_default_or_primary_key(self):
        assert ColumnSpec("digest", "TEXT NOT NULL").required
        assert not ColumnSpec("size_bytes", "INTEGER NOT NULL DEFAULT 0").required
        assert not ColumnSpec("id", "INTEGER PRIMARY KEY").required
        assert not ColumnSpec("note", "TEXT").required


class TestRebuildSql:
    def test_shadow_ddl_is_guarded_and_carries_constraints(self):
        step = _rebuild(constraints=("FOREIGN KEY (digest) REFERENCES content(digest) ON DELETE CASCADE",))

        sql = step.create_sql()

        assert sql.startswith("CREATE TABLE IF NOT EXISTS blobs_new (")
        assert "digest TEXT NOT NULL" in sql
        assert "FOREIGN KEY (digest) REFERENCES content(digest) ON DELETE CASCADE" in sql

    def test_copy_projects_columns_by_name(self):
        """Source column order does not matter and columns missing on either side are skipped."""
        step = _rebuild()

        sql = step.copy_sql(["legacy_ref", "note", "digest", "id"])

        assert sql == "INSERT INTO blobs_new (id, digest, note) SELECT id, digest, note FROM blobs"

    def test_default_step_names(self):
        assert _rebuild().name == "rebuild_blobs"
        assert DropTable("legacy").name == "drop_legacy"
        assert CreateIndex(IndexSpec("idx_a", "t", ("a",))).name == "create_idx_a"

    def test_unique_index_sql(self):
        index = IndexSpec("idx_blobs_digest", "blobs", ("digest",), unique=True)
        assert index.create_sql() == "CREATE UNIQUE INDEX IF NOT EXISTS idx_blobs_digest ON blobs(digest)"

    def test_rejects_non_identifier_names(self):
        index = IndexSpec("idx_blobs_digest", "blobs; DROP TABLE images", ("digest",))
        with pytest.raises(MigrationError, match="Invalid SQL identifier"):
            index.create_sql()

    def test_rebuild_without_columns_is_rejected(self):
        with pytest.raises(MigrationError, match="declares no columns"):
            RebuildTable(table="blobs", columns=())


class TestMigrationPlan:
    def test_dependencies_override_declaration_order(self):
        drop = DropTable("legacy", after=("rebuild_blobs",))
        rebuild = _rebuild()

        ordered = MigrationPlan([drop, rebuild]).ordered()

        assert [step.name for step in ordered] == ["rebuild_blobs", "drop_legacy"]

    def test_independent_steps_keep_declaration_order(self):
        steps = [DropTable("a"), DropTable("b"), DropTable("c")]
        assert MigrationPlan(steps).ordered() == steps

    def test_unknown_dependency(self):
        with pytest.raises(MigrationError, match="unknown steps: rebuild_missing"):
            MigrationPlan([DropTable("legacy", after=("rebuild_missing",))]).ordered()

    def test_duplicate_names(self):
        with pytest.raises(MigrationError, match="Duplicate migration step"):
            MigrationPlan([DropTable("legacy"), DropTable("legacy")]).ordered()

    def test_cycle(self):
        first = DropTable("a", after=("drop_b",))
        second = DropTable("b", after=("drop_a",))
        with pytest.raises(MigrationError, match="Dependency cycle"):
            MigrationPlan([first, second]).ordered()


@pytest.fixture
async def db():
    async with aiosqlite.connect(":memory:") as conn:
        await conn.execute(
            """
            CREATE TABLE blobs (
                note TEXT,
                legacy_ref INTEGER,
                digest TEXT NOT NULL,
                id INTEGER PRIMARY KEY
            )
            """
        )
        await conn.execute("INSERT INTO blobs (id, digest, note, legacy_ref) VALUES (1, 'sha256:aaa', NULL, 5)")
        await conn.execute("INSERT INTO blobs (id, digest, note, legacy_ref) VALUES (2, 'sha256:bbb', 'kept', 6)")
        await conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY)")
        await conn.commit()
        yield conn


class TestRebuildApply:
    @pytest.mark.asyncio
    async def test_rebuild_reshapes_table_and_keeps_values(self, db):
        await MigrationPlan([_rebuild(), DropTable("legacy", after=("rebuild_blobs",))]).apply(db)
        await db.commit()

        assert await table_columns(db, "blobs") == ["id", "digest", "size_bytes", "note"]
        cursor = await db.execute("SELECT id, digest, size_bytes, note FROM blobs ORDER BY id")
        rows = [tuple(row) for row in await cursor.fetchall()]
        assert rows == [(1, "sha256:aaa", 0, None), (2, "sha256:bbb", 0, "kept")]

        assert await index_exists(db, "idx_blobs_digest")
        assert not await table_exists(db, "legacy")
        assert not await table_exists(db, "blobs_new")

    @pytest.mark.asyncio
    async def test_second_apply_is_noop(self, db):
        plan = MigrationPlan([_rebuild(), DropTable("legacy", after=("rebuild_blobs",))])
        await plan.apply(db)
        await db.commit()
        cursor = await db.execute("SELECT sql FROM sqlite_master WHERE name = 'blobs'")
        ddl = (await cursor.fetchone())[0]

        await plan.apply(db)
        await db.commit()

        cursor = await db.execute("SELECT sql FROM sqlite_master WHERE name = 'blobs'")
        assert (await cursor.fetchone())[0] == ddl
        cursor = await db.execute("SELECT COUNT(*) FROM blobs")
        assert (await cursor.fetchone())[0] == 2

    @pytest.mark.asyncio
    async def test_missing_source_table(self, db):
        with pytest.raises(MigrationError, match="does not exist"):
            await _rebuild(table="nowhere").apply(db)

    @pytest.mark.asyncio
    async def test_missing_required_source_column(self, db):
        step = _rebuild(columns=(ColumnSpec("id", "INTEGER PRIMARY KEY"), ColumnSpec("owner", "TEXT NOT NULL")))

        with pytest.raises(MigrationError, match="required columns owner"):
            await step.apply(db)

        assert await table_columns(db, "blobs") == ["note", "legacy_ref", "digest", "id"]

    @pytest.mark.asyncio
    async def test_no_shared_columns(self, db):
        step = _rebuild(table="legacy", columns=(ColumnSpec("label", "TEXT"),), indexes=())

        with pytest.raises(MigrationError, match="no target column exists"):
            await step.apply(db)

        assert await table_columns(db, "legacy") == ["id"]
        assert not await table_exists(db, "legacy_new")

    @pytest.mark.asyncio
    async def test_create_index_step(self, db):
        await CreateIndex(IndexSpec("idx_blobs_note", "blobs", ("note",))).apply(db)
        await CreateIndex(IndexSpec("idx_blobs_note", "blobs", ("note",))).apply(db)

        assert await index_exists(db, "idx_blobs_note")
