"""Data models for the update checker engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from actionpin.core.github import is_sha

ActionType = Literal["external", "reusable-workflow", "composite", "docker", "local"]
RefType = Literal["tag", "branch"]
UpdateMode = Literal["major", "minor", "patch"]
Severity = Literal["none", "patch", "minor", "major", "unknown"]
ResolutionStatus = Literal["ok", "skipped", "failed"]

SHORT_SHA_LENGTH = 7

# Reference types that point at another repository and can be resolved.
RESOLVABLE_TYPES: frozenset[str] = frozenset({"external", "reusable-workflow"})


@dataclass(frozen=True)
class ActionReference:
    """One ``uses:`` occurrence found by the scanner.

    ``file``, ``line``, ``job`` and ``uses`` are provenance only; the
    resolver never interprets them.
    """

    name: str  # owner/repo[/path]
    version: str | None  # hash, tag or branch exactly as written
    type: ActionType = "external"
    file: str | None = None
    line: int | None = None
    job: str | None = None
    uses: str | None = None
    annotation: str | None = None  # e.g. "v4.2.4" from "# v4.2.4"

    @property
    def identity(self) -> tuple[str | None, int | None, str, str | None]:
        """Deduplication key: (file, line, name, version)."""
        return (self.file, self.line, self.name, self.version)


@dataclass(frozen=True)
class TagInfo:
    """A tag and the commit it ultimately points to."""

    tag: str
    sha: str | None = None
    date: datetime | None = None
    message: str | None = None


@dataclass(frozen=True)
class ReleaseInfo:
    """Normalized release metadata."""

    version: str  # tag name
    sha: str | None
    published_at: datetime | None
    is_prerelease: bool = False
    name: str | None = None
    url: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ResolvedVersion:
    """Outcome of resolving one reference against the remote API."""

    version: str | None = None
    sha: str | None = None
    published_at: datetime | None = None
    status: ResolutionStatus = "ok"
    skip_reason: Literal["branch"] | None = None
    error: str | None = None
    blocked_by_mode: bool = False
    unreachable: bool = False  # connection-level failure, timeouts excluded

    @classmethod
    def failed(cls, error: str, *, unreachable: bool = False) -> ResolvedVersion:
        return cls(status="failed", error=error, unreachable=unreachable)

    @classmethod
    def skipped(cls, reason: Literal["branch"]) -> ResolvedVersion:
        return cls(status="skipped", skip_reason=reason)


@dataclass(frozen=True)
class VersionDiff:
    """Change classification between two versions."""

    severity: Severity
    is_breaking: bool


@dataclass(frozen=True)
class ResolutionRecord:
    """Update status of a single reference. Immutable once produced."""

    reference: ActionReference
    current_version: str | None
    effective_version: str | None
    latest_version: str | None
    latest_sha: str | None
    has_update: bool
    is_breaking: bool
    severity: Severity = "unknown"
    published_at: datetime | None = None
    status: ResolutionStatus = "ok"
    skip_reason: Literal["branch"] | None = None
    error: str | None = None
    blocked_by_mode: bool = False

    @property
    def identity(self) -> tuple[str | None, int | None, str, str | None]:
        return self.reference.identity

    @property
    def display_version(self) -> str | None:
        """Version shown to the user for the current pin.

        Hash pins without a recoverable annotation are shortened.
        """
        if self.effective_version:
            return self.effective_version
        if self.current_version and is_sha(self.current_version):
            return self.current_version[:SHORT_SHA_LENGTH]
        return self.current_version

    @property
    def auto_selectable(self) -> bool:
        """Whether a consumer may pre-select this update for pinning."""
        return (
            self.status == "ok"
            and self.has_update
            and self.latest_sha is not None
            and not self.is_breaking
        )


@dataclass
class ScanResult:
    """Output of one scan pass over a directory."""

    workflows: dict[str, list[ActionReference]] = field(default_factory=dict)
    composite_actions: dict[str, str] = field(default_factory=dict)
    actions: list[ActionReference] = field(default_factory=list)


@dataclass
class CheckResult:
    """Aggregate of one :func:`resolve_all` run."""

    records: list[ResolutionRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def updates(self) -> list[ResolutionRecord]:
        return [r for r in self.records if r.status == "ok" and r.has_update]

    @property
    def up_to_date(self) -> list[ResolutionRecord]:
        return [r for r in self.records if r.status == "ok" and not r.has_update]

    @property
    def failed(self) -> list[ResolutionRecord]:
        return [r for r in self.records if r.status == "failed"]

    @property
    def skipped(self) -> list[ResolutionRecord]:
        return [r for r in self.records if r.status == "skipped"]
