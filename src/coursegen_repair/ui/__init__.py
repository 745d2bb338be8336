"""Command-line surface for coursegen-repair."""

from coursegen_repair.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]
