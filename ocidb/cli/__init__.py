"""Command line interface for the ocidb catalog."""

from ocidb.cli.commands import build_parser, main

__all__ = ["build_parser", "main"]
