"""GitHub naming utilities."""

from __future__ import annotations

import re

_SHA_RE = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)


def parse_action_name(name: str) -> tuple[str, str]:
    """Extract (owner, repo) from an action name.

    Handles plain ``owner/repo`` as well as sub-path actions and reusable
    workflows such as ``owner/repo/path/to/action`` or
    ``owner/repo/.github/workflows/ci.yml``.

    Raises ValueError if the name does not carry two non-empty segments.
    """
    segments = name.strip().split("/")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        raise ValueError(f"cannot parse action name: {name!r}")
    return segments[0], segments[1]


def repo_key(owner: str, repo: str) -> str:
    """Cache key identifying a repository."""
    return f"{owner}/{repo}"


def ref_key(owner: str, repo: str, ref: str) -> str:
    """Cache key identifying a reference inside a repository."""
    return f"{owner}/{repo}#{ref.removeprefix('refs/tags/')}"


def is_sha(value: str | None) -> bool:
    """True iff *value* is 7–40 hex characters after an optional ``v`` prefix."""
    if not value:
        return False
    value = value.strip()
    if value[:1] in ("v", "V"):
        value = value[1:]
    return bool(_SHA_RE.match(value))
