"""Utility functions for the deployer."""

from deployer.utils.logging import configure_logging, get_logger
from deployer.utils.strings import collapse_whitespace, slugify, strip_ansi

__all__ = [
    "configure_logging",
    "get_logger",
    "collapse_whitespace",
    "slugify",
    "strip_ansi",
]
