"""Schema migrations for the OCI image catalog.

Migration modules are named ``NNN_description.py`` and expose ``async def up(db)``.
They run inside a transaction owned by the runner and must not commit.
"""


class MigrationError(RuntimeError):
    """Raised when a migration cannot be planned or leaves the schema inconsistent."""


__all__ = ["MigrationError"]
