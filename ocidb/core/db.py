"""Database manager for ocidb - handles the image catalog connection and queries."""

import json
import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from ocidb.constants import DEFAULT_BUSY_TIMEOUT_MS, MEMORY_DB_PATH
from ocidb.core.migrations.runner import run_pending_migrations

from .models import Image, JsonDict, Manifest

logger = logging.getLogger(__name__)


class Db:
    """Database interface for the OCI image catalog."""

    def __init__(self, db_path: str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        """Initialize database.

        Args:
            db_path: Path to SQLite database file (or ":memory:")
            busy_timeout_ms: How long SQLite waits on a locked database
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._db: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> int:
        """Connect and bring the schema up to date.

        Returns:
            Number of migrations applied
        """
        if self.db_path != MEMORY_DB_PATH:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        await self._db.execute("PRAGMA foreign_keys=ON")

        applied = await run_pending_migrations(self._db)
        if applied:
            logger.info("Database %s migrated (%d migration(s) applied)", self.db_path, applied)
        return applied

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get database connection, asserting it's initialized.

        Returns:
            Active database connection

        Raises:
            RuntimeError: If database not initialized
        """
        if self._db is None:
            raise RuntimeError("Database not initialized - call initialize() first")
        return self._db

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def add_image(self, reference: str, size_bytes: int = 0) -> Image:
        """Insert an image row, or return the existing one for the same reference."""
        await self.conn.execute(
            "INSERT INTO images (reference, size_bytes) VALUES (?, ?) ON CONFLICT(reference) DO NOTHING",
            (reference, size_bytes),
        )
        await self.conn.commit()

        image = await self.get_image_by_reference(reference)
        if image is None:
            raise RuntimeError(f"Image {reference} vanished after insert")
        return image

    async def get_image(self, image_id: int) -> Optional[Image]:
        cursor = await self.conn.execute("SELECT * FROM images WHERE id = ?", (image_id,))
        row = await cursor.fetchone()
        return Image.from_row(row) if row else None

    async def get_image_by_reference(self, reference: str) -> Optional[Image]:
        cursor = await self.conn.execute("SELECT * FROM images WHERE reference = ?", (reference,))
        row = await cursor.fetchone()
        return Image.from_row(row) if row else None

    async def list_images(self) -> list[Image]:
        cursor = await self.conn.execute("SELECT * FROM images ORDER BY reference")
        rows = await cursor.fetchall()
        return [Image.from_row(row) for row in rows]

    async def touch_image(self, image_id: int) -> None:
        """Record that an image was used just now."""
        await self.conn.execute(
            "UPDATE images SET last_used_at = CURRENT_TIMESTAMP, modified_at = CURRENT_TIMESTAMP WHERE id = ?",
            (image_id,),
        )
        await self.conn.commit()

    async def delete_image(self, image_id: int) -> bool:
        """Delete an image; its manifests, configs and layers cascade.

        Returns:
            True if a row was deleted
        """
        cursor = await self.conn.execute("DELETE FROM images WHERE id = ?", (image_id,))
        await self.conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug("Deleted image %d", image_id)
        return deleted

    async def add_manifest(
        self,
        image_id: int,
        schema_version: int,
        media_type: str,
        annotations: Optional[JsonDict] = None,
    ) -> Manifest:
        """Insert a manifest for an existing image.

        Raises:
            sqlite3.IntegrityError: If image_id does not reference an image
        """
        annotations_json = json.dumps(annotations, sort_keys=True) if annotations is not None else None
        cursor = await self.conn.execute(
            """
            INSERT INTO manifests (image_id, schema_version, media_type, annotations_json)
            VALUES (?, ?, ?, ?)
            """,
            (image_id, schema_version, media_type, annotations_json),
        )
        await self.conn.commit()

        manifest_id = cursor.lastrowid
        if manifest_id is None:
            raise RuntimeError("Manifest insert returned no row id")
        manifest = await self.get_manifest(manifest_id)
        if manifest is None:
            raise RuntimeError(f"Manifest {manifest_id} vanished after insert")
        return manifest

    async def get_manifest(self, manifest_id: int) -> Optional[Manifest]:
        cursor = await self.conn.execute("SELECT * FROM manifests WHERE id = ?", (manifest_id,))
        row = await cursor.fetchone()
        return Manifest.from_row(row) if row else None

    async def list_manifests(self, image_id: int) -> list[Manifest]:
        """Manifests of one image (served by idx_manifests_image_id)."""
        cursor = await self.conn.execute(
            "SELECT * FROM manifests WHERE image_id = ? ORDER BY id",
            (image_id,),
        )
        rows = await cursor.fetchall()
        return [Manifest.from_row(row) for row in rows]

    async def count_manifests(self) -> int:
        cursor = await self.conn.execute("SELECT COUNT(*) FROM manifests")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
