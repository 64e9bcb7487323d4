from __future__ import annotations

import re
from urllib.parse import quote, unquote

from .errors import B2Error

# Leaves ASCII letters, digits, "-_.~" and "/" alone and percent-encodes
# every other UTF-8 byte, which is what the service unescapes.
_SAFE = "/"
_BAD_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def escape(value: str) -> str:
    return quote(value, safe=_SAFE, encoding="utf-8", errors="strict")


def unescape(value: str) -> str:
    if _BAD_PERCENT.search(value):
        raise B2Error(f"invalid escape sequence in {value!r}")
    try:
        return unquote(value, encoding="utf-8", errors="strict")
    except UnicodeDecodeError as exc:
        raise B2Error(f"invalid escape sequence in {value!r}") from exc


def escape_header(name: str, value: str) -> str:
    """Escape ``value`` if ``name`` is a file name or file info header."""
    lowered = name.lower()
    if lowered.startswith("x-bz-info") or lowered.startswith("x-bz-file-name"):
        return escape(value)
    return value


__all__ = ["escape", "unescape", "escape_header"]
