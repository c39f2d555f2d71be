"""Create the initial OCI image catalog schema.

Manifests hang off an index set (``indexes``) through ``index_id``; that link
is retired again by 002_drop_manifest_index_id.
"""

import aiosqlite

from ocidb.core.migrations.constants import (
    TABLE_CONFIGS,
    TABLE_IMAGES,
    TABLE_INDEXES,
    TABLE_LAYERS,
    TABLE_MANIFESTS,
)

SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_IMAGES} (
        id INTEGER PRIMARY KEY,
        reference TEXT NOT NULL UNIQUE,
        size_bytes INTEGER NOT NULL DEFAULT 0,
        last_used_at DATETIME,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        modified_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_INDEXES} (
        id INTEGER PRIMARY KEY,
        image_id INTEGER NOT NULL,
        schema_version INTEGER NOT NULL,
        media_type TEXT NOT NULL,
        platform_os TEXT,
        platform_arch TEXT,
        platform_variant TEXT,
        annotations_json TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        modified_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (image_id) REFERENCES {TABLE_IMAGES}(id) ON DELETE CASCADE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_MANIFESTS} (
        id INTEGER PRIMARY KEY,
        index_id INTEGER,
        image_id INTEGER NOT NULL,
        schema_version INTEGER NOT NULL,
        media_type TEXT NOT NULL,
        annotations_json TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        modified_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (index_id) REFERENCES {TABLE_INDEXES}(id) ON DELETE CASCADE,
        FOREIGN KEY (image_id) REFERENCES {TABLE_IMAGES}(id) ON DELETE CASCADE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_CONFIGS} (
        id INTEGER PRIMARY KEY,
        manifest_id INTEGER NOT NULL,
        media_type TEXT NOT NULL,
        created DATETIME,
        architecture TEXT NOT NULL,
        os TEXT NOT NULL,
        os_variant TEXT,
        config_json TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        modified_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (manifest_id) REFERENCES {TABLE_MANIFESTS}(id) ON DELETE CASCADE
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE_LAYERS} (
        id INTEGER PRIMARY KEY,
        manifest_id INTEGER NOT NULL,
        media_type TEXT NOT NULL,
        digest TEXT NOT NULL,
        diff_id TEXT NOT NULL,
        size_bytes INTEGER NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        modified_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (manifest_id) REFERENCES {TABLE_MANIFESTS}(id) ON DELETE CASCADE
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_indexes_image_id ON {TABLE_INDEXES}(image_id)",
    f"CREATE INDEX IF NOT EXISTS idx_manifests_index_id ON {TABLE_MANIFESTS}(index_id)",
    f"CREATE INDEX IF NOT EXISTS idx_manifests_image_id ON {TABLE_MANIFESTS}(image_id)",
    f"CREATE INDEX IF NOT EXISTS idx_configs_manifest_id ON {TABLE_CONFIGS}(manifest_id)",
    f"CREATE INDEX IF NOT EXISTS idx_layers_manifest_id ON {TABLE_LAYERS}(manifest_id)",
    f"CREATE INDEX IF NOT EXISTS idx_layers_digest ON {TABLE_LAYERS}(digest)",
)


async def up(db: aiosqlite.Connection) -> None:
    """Apply migration."""
    # executescript() would commit the runner's transaction
    for statement in SCHEMA_STATEMENTS:
        await db.execute(statement)
