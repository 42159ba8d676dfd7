"""Version resolver — find the newest applicable version of one reference."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog

from actionpin.core.github import parse_action_name, ref_key, repo_key
from actionpin.engines.update_checker.context import MISSING
from actionpin.engines.update_checker.github_client import GitHubClient
from actionpin.engines.update_checker.models import (
    ActionReference,
    ReleaseInfo,
    ResolutionRecord,
    ResolvedVersion,
    TagInfo,
    UpdateMode,
)
from actionpin.engines.update_checker.versions import (
    compare_sha,
    diff_versions,
    find_compatible_tag,
    is_semver_like,
    is_sha,
    normalize_version,
    parse_version,
    pick_latest_tag,
)

log = structlog.get_logger("actionpin.engine")


@dataclass(frozen=True)
class ResolverOptions:
    mode: UpdateMode = "major"
    include_branches: bool = False
    fetch_dates: bool = False
    tags_per_page: int = 100


def effective_version(reference: ActionReference) -> str | None:
    """Version used for comparison.

    A hash pin borrows its adjacent annotation when that parses as a
    version; without one the effective version is unknown.
    """
    if is_sha(reference.version):
        if reference.annotation and parse_version(reference.annotation) is not None:
            return reference.annotation
        return None
    return reference.version


class VersionResolver:
    """Resolve references through a shared :class:`GitHubClient`.

    The tag listing of a repository is fetched once per run; concurrent
    resolutions of the same repository wait for the first one.
    """

    def __init__(self, client: GitHubClient, options: ResolverOptions | None = None) -> None:
        self._client = client
        self._options = options or ResolverOptions()
        self._repo_locks: dict[str, asyncio.Lock] = {}

    @property
    def options(self) -> ResolverOptions:
        return self._options

    async def resolve(self, reference: ActionReference) -> ResolvedVersion:
        """Resolve *reference*; failures come back as a failed result, never raised."""
        try:
            return await self._resolve(reference)
        except Exception as exc:
            log.warning(
                "resolver.failed",
                action=reference.name,
                ref=reference.version,
                error=f"{type(exc).__name__}: {exc}",
            )
            return ResolvedVersion.failed(
                f"{type(exc).__name__}: {exc}",
                unreachable=isinstance(exc, httpx.NetworkError),
            )

    async def _resolve(self, reference: ActionReference) -> ResolvedVersion:
        owner, repo = parse_action_name(reference.name)
        current = reference.version

        if current and not is_sha(current) and not is_semver_like(current):
            ref_type = await self._client.get_ref_type(owner, repo, current)
            if ref_type == "branch" and not self._options.include_branches:
                log.info("resolver.skipped_branch", action=reference.name, ref=current)
                return ResolvedVersion.skipped("branch")

        tags = await self._load_tags(owner, repo)
        effective = effective_version(reference)

        if self._options.mode != "major" and is_semver_like(effective):
            compatible = find_compatible_tag(list(tags), effective, self._options.mode)
            if compatible is None:
                newest = pick_latest_tag(list(tags))
                newest_v = parse_version(newest.tag) if newest else None
                current_v = parse_version(effective)
                if newest is not None and newest_v and current_v and newest_v > current_v:
                    return ResolvedVersion(
                        version=newest.tag, sha=newest.sha, blocked_by_mode=True
                    )
                return ResolvedVersion(version=effective)
            return await self._finish(owner, repo, compatible)

        chosen = pick_latest_tag(list(tags))
        if chosen is None:
            release = await self._release_fallback(owner, repo)
            if release is None:
                return ResolvedVersion()
            sha = release.sha or await self._client.get_tag_sha(owner, repo, release.version)
            return ResolvedVersion(
                version=release.version, sha=sha, published_at=release.published_at
            )
        return await self._finish(owner, repo, chosen)

    async def _finish(self, owner: str, repo: str, tag: TagInfo) -> ResolvedVersion:
        sha = tag.sha or await self._client.get_tag_sha(owner, repo, tag.tag)
        published_at = None
        if self._options.fetch_dates:
            info = await self._client.get_tag_info(owner, repo, tag.tag)
            if info is not None:
                published_at = info.date
                sha = sha or info.sha
        return ResolvedVersion(version=tag.tag, sha=sha, published_at=published_at)

    async def _load_tags(self, owner: str, repo: str) -> tuple[TagInfo, ...]:
        """Tag listing of a repository; one remote call per run.

        The listing also seeds the tag-metadata and tag→hash caches so later
        lookups of any listed tag need no round trip.
        """
        key = repo_key(owner, repo)
        context = self._client.context
        lock = self._repo_locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = context.tags.get(key)
            if cached is not MISSING:
                return cached

            tags = tuple(
                await self._client.get_all_tags(owner, repo, self._options.tags_per_page)
            )
            for info in tags:
                tag_key = ref_key(owner, repo, info.tag)
                if tag_key not in context.tag_info:
                    context.tag_info.set(tag_key, info)
                if info.sha and tag_key not in context.tag_sha:
                    context.tag_sha.set(tag_key, info.sha)
            context.tags.set(key, tags)
            log.debug("resolver.tags_loaded", repo=key, count=len(tags))
            return tags

    async def _release_fallback(self, owner: str, repo: str) -> ReleaseInfo | None:
        release = await self._client.get_latest_release(owner, repo)
        if release is not None:
            return release
        releases = await self._client.get_all_releases(owner, repo, limit=10)
        stable = [r for r in releases if not r.is_prerelease]
        if stable:
            return stable[0]
        return releases[0] if releases else None


def build_record(reference: ActionReference, resolved: ResolvedVersion) -> ResolutionRecord:
    """Combine a reference with its resolution into the final record."""
    current = reference.version
    effective = effective_version(reference)
    base = {
        "reference": reference,
        "current_version": current,
        "effective_version": effective,
        "published_at": resolved.published_at,
        "status": resolved.status,
        "skip_reason": resolved.skip_reason,
        "error": resolved.error,
    }

    if resolved.status != "ok":
        return ResolutionRecord(
            **base,
            latest_version=None,
            latest_sha=None,
            has_update=False,
            is_breaking=False,
        )

    latest, latest_sha = resolved.version, resolved.sha
    latest_v = parse_version(latest)
    effective_v = parse_version(effective)

    if resolved.blocked_by_mode:
        diff = diff_versions(latest, effective)
        return ResolutionRecord(
            **base,
            latest_version=latest,
            latest_sha=latest_sha,
            has_update=False,
            is_breaking=diff.is_breaking,
            severity=diff.severity,
            blocked_by_mode=True,
        )

    if latest is None and latest_sha is None:
        return ResolutionRecord(
            **base, latest_version=None, latest_sha=None, has_update=False, is_breaking=False
        )

    if latest_v is not None and effective_v is not None:
        if latest_v > effective_v:
            diff = diff_versions(latest, effective)
            return ResolutionRecord(
                **base,
                latest_version=latest,
                latest_sha=latest_sha,
                has_update=True,
                is_breaking=diff.is_breaking,
                severity=diff.severity,
            )
        # Same version on a tag pin: suggest pinning the tag to its commit.
        pin_suggestion = (
            latest_v == effective_v and latest_sha is not None and not is_sha(current)
        )
        return ResolutionRecord(
            **base,
            latest_version=latest,
            latest_sha=latest_sha,
            has_update=pin_suggestion,
            is_breaking=False,
            severity="none",
        )

    if is_sha(current):
        # No usable annotation: only the commits can be compared.
        if latest_sha:
            has_update = not compare_sha(current or "", latest_sha)
        else:
            has_update = latest is not None
    elif current is None:
        has_update = latest is not None
    else:
        has_update = normalize_version(current) != normalize_version(latest)

    return ResolutionRecord(
        **base,
        latest_version=latest,
        latest_sha=latest_sha,
        has_update=has_update,
        is_breaking=False,
        severity="unknown",
    )
