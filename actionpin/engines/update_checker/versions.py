"""Reference classification, version normalization and diffing.

Everything here is pure: no network access and no shared state.

Breaking-change policy: a change of the leading component is breaking and
nothing else is. The rule applies to ``0.x`` packages as well, so ``0.3`` to
``0.4`` counts as minor while ``0.9`` to ``1.0`` counts as breaking. Pass a
different ``breaking`` predicate to :func:`diff_versions` for other
conventions.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from actionpin.core.github import is_sha
from actionpin.engines.update_checker.models import (
    Severity,
    TagInfo,
    UpdateMode,
    VersionDiff,
)

_SEMVER_LIKE_RE = re.compile(r"^v?\d+(?:\.\d+){0,2}$")
_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?")
_UPDATE_MODES: tuple[UpdateMode, ...] = ("major", "minor", "patch")

VersionTuple = tuple[int, int, int]


def _strip_prefix(value: str) -> str:
    value = value.strip()
    if value[:1] in ("v", "V"):
        return value[1:]
    return value


# ── classifier ────────────────────────────────────────────────────────────


def is_semver_like(value: str | None) -> bool:
    """True for ``v1``, ``v1.2``, ``1.2.3``; false for pre-releases and names."""
    if not value:
        return False
    return bool(_SEMVER_LIKE_RE.match(value.strip()))


# ── normalization ─────────────────────────────────────────────────────────


def parse_version(value: str | None) -> VersionTuple | None:
    """Parse the leading numeric part of *value*, padding to three components.

    ``v4`` becomes ``(4, 0, 0)`` and ``v4.2.4-beta`` becomes ``(4, 2, 4)``.
    Returns None for hashes and for strings without a leading number.
    """
    if not value or is_sha(value):
        return None
    m = _VERSION_RE.match(_strip_prefix(value))
    if not m:
        return None
    major, minor, patch = (int(part) if part is not None else 0 for part in m.groups())
    return major, minor, patch


def normalize_version(value: str | None) -> str | None:
    """Return ``X.Y.Z`` for parseable versions, the raw value otherwise.

    Hashes are passed through unchanged. Empty input yields None.
    """
    if not value:
        return None
    parsed = parse_version(value)
    if parsed is None:
        return value
    return "{}.{}.{}".format(*parsed)


def specificity(tag: str) -> int:
    """Number of dotted parts: 1 for ``v1``, 3 for ``v1.2.3``."""
    return len(_strip_prefix(tag).split("."))


def compare_sha(first: str, second: str) -> bool:
    """Whether two hashes name the same commit.

    Short and full hashes are compared on their common prefix, which must be
    at least seven characters long.
    """
    a = _strip_prefix(first).lower()
    b = _strip_prefix(second).lower()
    length = min(len(a), len(b))
    if length < 7:
        return False
    return a[:length] == b[:length]


# ── differ ────────────────────────────────────────────────────────────────


def _major_changed(severity: Severity) -> bool:
    return severity == "major"


def diff_versions(
    latest: str | None,
    current: str | None,
    *,
    breaking: Callable[[Severity], bool] = _major_changed,
) -> VersionDiff:
    """Classify the change from *current* to *latest*.

    Severity is decided by the first differing component. Unparseable input
    on either side yields ``unknown`` and is never breaking.
    """
    latest_v = parse_version(latest)
    current_v = parse_version(current)
    if latest_v is None or current_v is None:
        return VersionDiff(severity="unknown", is_breaking=False)

    severity: Severity
    if latest_v[0] != current_v[0]:
        severity = "major"
    elif latest_v[1] != current_v[1]:
        severity = "minor"
    elif latest_v[2] != current_v[2]:
        severity = "patch"
    else:
        severity = "none"
    return VersionDiff(severity=severity, is_breaking=breaking(severity))


# ── tag selection ─────────────────────────────────────────────────────────


def _ranked(tags: Iterable[TagInfo]) -> list[tuple[VersionTuple, TagInfo]]:
    candidates: list[tuple[VersionTuple, TagInfo]] = []
    for info in tags:
        if not is_semver_like(info.tag):
            continue
        parsed = parse_version(info.tag)
        if parsed is not None:
            candidates.append((parsed, info))
    # Highest version first; among equal versions the more specific tag wins.
    candidates.sort(key=lambda c: (c[0], specificity(c[1].tag)), reverse=True)
    return candidates


def pick_latest_tag(tags: list[TagInfo]) -> TagInfo | None:
    """Pick the numerically highest semver-like tag.

    Falls back to the first tag as returned by the API (most recent commit)
    when none of the tags looks like a version.
    """
    if not tags:
        return None
    ranked = _ranked(tags)
    if ranked:
        return ranked[0][1]
    return tags[0]


def find_compatible_tag(
    tags: list[TagInfo],
    current_version: str | None,
    mode: UpdateMode,
) -> TagInfo | None:
    """Newest tag newer than *current_version* allowed by *mode*.

    ``minor`` keeps the major component, ``patch`` keeps major and minor.
    ``major`` places no restriction.
    """
    if not is_semver_like(current_version):
        return None
    current = parse_version(current_version)
    if current is None:
        return None

    for parsed, info in _ranked(tags):
        if parsed <= current:
            break
        if mode != "major" and parsed[0] != current[0]:
            continue
        if mode == "patch" and parsed[1] != current[1]:
            continue
        return info
    return None


def normalize_update_mode(mode: str | None) -> UpdateMode:
    """Validate an update mode, defaulting to ``major``."""
    normalized = (mode or "major").lower()
    for candidate in _UPDATE_MODES:
        if normalized == candidate:
            return candidate
    raise ValueError(f'Invalid mode "{mode}". Expected "major", "minor", or "patch".')
