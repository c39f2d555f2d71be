"""Pytest configuration for ocidb tests."""

import logging
import os
import tempfile

import pytest

# Keep the developer's real config and database out of test runs; ocidb.config loads at import.
_isolated_home = tempfile.mkdtemp(prefix="ocidb-tests-")
os.environ["OCIDB_CONFIG_PATH"] = os.path.join(_isolated_home, "config.yml")
os.environ["OCIDB_ENV_PATH"] = os.path.join(_isolated_home, ".env")
os.environ.pop("OCIDB_DB_PATH", None)
os.environ.pop("OCIDB_LOG_LEVEL", None)

logging.getLogger("ocidb").handlers.clear()


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=2s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(2))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))
