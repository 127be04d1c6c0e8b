"""Helmlet utility modules.

- logging: Human/verbose/JSON log output for the CLI
"""

from helmlet.utils.logging import configure_from_cli, get_logger, setup_logging

__all__ = [
    "configure_from_cli",
    "get_logger",
    "setup_logging",
]
