"""Recover the version written next to a hash pin.

After pinning, a ``uses:`` line typically reads
``uses: actions/checkout@<sha> # v4.2.4``; the trailing comment is the only
place the human-readable version survives.
"""

from __future__ import annotations

import re
from pathlib import Path

_INLINE_VERSION_RE = re.compile(r"#\s*(?P<version>[Vv]?\d+(?:\.\d+){0,2}(?:[+-][\w\-.]+)?)")


def parse_inline_version(line: str) -> str | None:
    """Extract ``v5.0.0`` from ``... @<sha> # v5.0.0``; None when absent."""
    m = _INLINE_VERSION_RE.search(line)
    return m.group("version") if m else None


def read_inline_version_comment(
    file_path: str | Path | None,
    line_number: int | None,
    cache: dict[str, str] | None = None,
) -> str | None:
    """Best-effort read of the version comment on a 1-based source line.

    *cache* maps file paths to contents so that many references in one file
    read it once. Unreadable files and out-of-range lines yield None.
    """
    if not file_path or not line_number or line_number <= 0:
        return None

    path_key = str(file_path)
    content = cache.get(path_key) if cache is not None else None
    if content is None:
        try:
            content = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None
        if cache is not None:
            cache[path_key] = content

    lines = content.split("\n")
    if line_number > len(lines):
        return None
    return parse_inline_version(lines[line_number - 1])
