"""Drop manifests.index_id and retire the indexes table.

SQLite cannot drop a column that carries a foreign key, so manifests is
rebuilt through a shadow table. The column list below is the complete target
shape; index_id is removed by omission.
"""

import aiosqlite

from ocidb.core.migrations.constants import (
    COLUMN_IMAGE_ID,
    INDEX_MANIFESTS_IMAGE_ID,
    TABLE_INDEXES,
    TABLE_MANIFESTS,
)
from ocidb.core.migrations.rebuild import ColumnSpec, DropTable, IndexSpec, MigrationPlan, RebuildTable

REBUILD_MANIFESTS = RebuildTable(
    table=TABLE_MANIFESTS,
    columns=(
        ColumnSpec("id", "INTEGER PRIMARY KEY"),
        ColumnSpec("image_id", "INTEGER NOT NULL"),
        ColumnSpec("schema_version", "INTEGER NOT NULL"),
        ColumnSpec("media_type", "TEXT NOT NULL"),
        ColumnSpec("annotations_json", "TEXT"),
        ColumnSpec("created_at", "DATETIME DEFAULT CURRENT_TIMESTAMP"),
        ColumnSpec("modified_at", "DATETIME DEFAULT CURRENT_TIMESTAMP"),
    ),
    constraints=("FOREIGN KEY (image_id) REFERENCES images(id) ON DELETE CASCADE",),
    indexes=(IndexSpec(INDEX_MANIFESTS_IMAGE_ID, TABLE_MANIFESTS, (COLUMN_IMAGE_ID,)),),
)

PLAN = MigrationPlan(
    [
        REBUILD_MANIFESTS,
        # manifests.index_id references indexes(id)
        DropTable(TABLE_INDEXES, after=(REBUILD_MANIFESTS.name,)),
    ]
)


async def up(db: aiosqlite.Connection) -> None:
    """Apply migration."""
    await PLAN.apply(db)
