"""String helpers shared across the pipeline."""

import re

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")
_ANSI_ESCAPE = re.compile(r"\x1B\[[0-9;]*[a-zA-Z]")
_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Turn an arbitrary name into a URL-safe slug ("app" if nothing survives)."""
    slug = _NON_SLUG_CHARS.sub("-", name.lower()).strip("-")
    return slug or "app"


def strip_ansi(text: str) -> str:
    """Remove terminal color codes emitted by build tools."""
    return _ANSI_ESCAPE.sub("", text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()
