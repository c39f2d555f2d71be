"""SQLite catalog of pulled OCI images."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ocidb")
except PackageNotFoundError:
    # Source checkout without an installed distribution
    __version__ = "0.0.0"

__all__ = ["__version__"]
