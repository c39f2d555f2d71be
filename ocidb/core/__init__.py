"""Core persistence layer: SQLite catalog of pulled OCI images."""
