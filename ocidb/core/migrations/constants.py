"""Constants for migration routines."""

INIT_FILE_NAME = "__init__.py"

MIGRATIONS_TABLE = "schema_migrations"
SHADOW_SUFFIX = "_new"

TABLE_IMAGES = "images"
TABLE_INDEXES = "indexes"
TABLE_MANIFESTS = "manifests"
TABLE_CONFIGS = "configs"
TABLE_LAYERS = "layers"

COLUMN_IMAGE_ID = "image_id"

INDEX_MANIFESTS_IMAGE_ID = "idx_manifests_image_id"
