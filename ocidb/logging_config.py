"""ocidb logging configuration.

Logs go to stderr through the standard library `logging` package. The level
comes from the explicit argument, then `OCIDB_LOG_LEVEL`, then the `logging.level`
key of config.yml.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from ocidb.config import config
from ocidb.constants import ENV_LOG_LEVEL, LOG_FORMAT

_HANDLER_NAME = "ocidb-stderr"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure ocidb logging.

    Args:
        level: Optional override for `OCIDB_LOG_LEVEL`.
    """
    if level:
        os.environ[ENV_LOG_LEVEL] = level

    resolved = (os.getenv(ENV_LOG_LEVEL) or config.logging.level).upper()

    logger = logging.getLogger("ocidb")
    logger.setLevel(resolved)

    # Re-running setup only adjusts the level
    if any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
