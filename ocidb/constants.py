"""Constants used across ocidb.

This module defines shared constants to ensure consistency.
"""

# Environment variables (override config file values)
ENV_CONFIG_PATH = "OCIDB_CONFIG_PATH"
ENV_DOTENV_PATH = "OCIDB_ENV_PATH"
ENV_DB_PATH = "OCIDB_DB_PATH"
ENV_LOG_LEVEL = "OCIDB_LOG_LEVEL"

# Defaults (user-configurable through config.yml)
DEFAULT_HOME_DIR = "~/.ocidb"
DEFAULT_CONFIG_FILE = "config.yml"
DEFAULT_DB_FILE = "oci.db"
DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

MEMORY_DB_PATH = ":memory:"
