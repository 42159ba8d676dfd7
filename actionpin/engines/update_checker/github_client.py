"""Async GitHub API client with retries, timeouts, and shared rate-limit tracking."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from actionpin import __version__
from actionpin.core.github import ref_key
from actionpin.engines.update_checker.context import (
    MISSING,
    ClientContext,
    update_rate_limit_info,
)
from actionpin.engines.update_checker.models import RefType, ReleaseInfo, TagInfo
from actionpin.engines.update_checker.payloads import (
    GitRefPayload,
    GitTagPayload,
    ReleasePayload,
    parse_payload,
    parse_tag_list,
)
from actionpin.engines.update_checker.versions import is_sha
from actionpin.exceptions import (
    MalformedResponseError,
    NotFoundError,
    RateLimitError,
    RemoteLookupError,
)

log = structlog.get_logger("actionpin.engine")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


class GitHubClient:
    """Thin async wrapper around the GitHub REST API.

    Every response, successful or not, is fed to
    :func:`update_rate_limit_info` and every attempt first waits on the
    shared rate-limit budget of *context*.
    """

    def __init__(
        self,
        context: ClientContext,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.context = context
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"actionpin/{__version__}",
        }
        if context.token:
            headers["Authorization"] = f"Bearer {context.token}"
        self._client = httpx.AsyncClient(
            base_url=context.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Single GET, returns parsed JSON."""
        response = await self._request_with_retry(path, params)
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"invalid JSON from {path}") from exc

    async def get_all_tags(self, owner: str, repo: str, limit: int = 100) -> list[TagInfo]:
        """GET /repos/{owner}/{repo}/tags — newest commits first, one page."""
        data = await self.get(f"/repos/{owner}/{repo}/tags", {"per_page": limit})
        return [
            TagInfo(tag=item.name, sha=item.commit.sha if item.commit else None)
            for item in parse_tag_list(data)
        ]

    async def get_latest_release(self, owner: str, repo: str) -> ReleaseInfo | None:
        """GET /repos/{owner}/{repo}/releases/latest — None when there is none."""
        try:
            data = await self.get(f"/repos/{owner}/{repo}/releases/latest")
        except NotFoundError:
            return None
        return _release_info(parse_payload(ReleasePayload, data, what="release"))

    async def get_all_releases(self, owner: str, repo: str, limit: int = 10) -> list[ReleaseInfo]:
        """GET /repos/{owner}/{repo}/releases."""
        data = await self.get(f"/repos/{owner}/{repo}/releases", {"per_page": limit})
        if not isinstance(data, list):
            raise MalformedResponseError("unexpected release list payload")
        return [
            _release_info(parse_payload(ReleasePayload, item, what="release")) for item in data
        ]

    async def get_ref_type(self, owner: str, repo: str, ref: str) -> RefType | None:
        """Tell whether *ref* names a tag or a branch. Cached per run."""
        key = ref_key(owner, repo, ref)
        cached = self.context.ref_types.get(key)
        if cached is not MISSING:
            return cached

        ref_type: RefType | None = None
        probes: tuple[tuple[RefType, str], ...] = (("tag", "tags"), ("branch", "heads"))
        for kind, prefix in probes:
            try:
                await self.get(f"/repos/{owner}/{repo}/git/refs/{prefix}/{ref}")
            except NotFoundError:
                continue
            ref_type = kind
            break

        self.context.ref_types.set(key, ref_type)
        return ref_type

    async def get_tag_sha(self, owner: str, repo: str, tag: str) -> str | None:
        """Resolve the commit a tag points to, dereferencing annotated tags.

        Unknown tags resolve to None; both outcomes are cached per run.
        """
        key = ref_key(owner, repo, tag)
        cached = self.context.tag_sha.get(key)
        if cached is not MISSING:
            return cached

        name = tag.removeprefix("refs/tags/")
        try:
            data = await self.get(f"/repos/{owner}/{repo}/git/refs/tags/{name}")
        except NotFoundError:
            self.context.tag_sha.set(key, None)
            return None

        obj = parse_payload(GitRefPayload, data, what="git ref").object
        sha: str | None = None
        if obj.type == "tag":
            sha = await self._dereference_tag(owner, repo, obj.sha)
        elif obj.type == "commit":
            sha = obj.sha

        self.context.tag_sha.set(key, sha)
        return sha

    async def get_tag_info(self, owner: str, repo: str, tag: str) -> TagInfo | None:
        """Tag metadata: publish date and notes from its release, plus commit.

        Returns None when neither a release nor a tag ref exists.
        """
        name = tag.removeprefix("refs/tags/")
        key = ref_key(owner, repo, name)
        cached = self.context.tag_info.get(key)
        # Entries seeded from a tag listing have not been checked for a release.
        if cached is not MISSING and key in self.context.releases:
            return cached

        release = await self._get_release_by_tag(owner, repo, name)

        sha = await self.get_tag_sha(owner, repo, name)
        if sha is None and release is not None:
            sha = release.sha

        info: TagInfo | None
        if release is None and sha is None:
            info = None
        else:
            info = TagInfo(
                tag=name,
                sha=sha,
                date=release.published_at if release else None,
                message=release.description if release else None,
            )
        self.context.tag_info.set(key, info)
        return info

    # ── internal ───────────────────────────────────────────────────────────

    async def _get_release_by_tag(self, owner: str, repo: str, tag: str) -> ReleaseInfo | None:
        """GET /repos/{owner}/{repo}/releases/tags/{tag}; misses are cached too."""
        key = ref_key(owner, repo, tag)
        cached = self.context.releases.get(key)
        if cached is not MISSING:
            return cached

        release: ReleaseInfo | None
        try:
            data = await self.get(f"/repos/{owner}/{repo}/releases/tags/{tag}")
            release = _release_info(parse_payload(ReleasePayload, data, what="release"))
        except NotFoundError:
            release = None
        self.context.releases.set(key, release)
        return release

    async def _dereference_tag(self, owner: str, repo: str, tag_object_sha: str) -> str:
        try:
            data = await self.get(f"/repos/{owner}/{repo}/git/tags/{tag_object_sha}")
        except RemoteLookupError:
            return tag_object_sha
        tag = parse_payload(GitTagPayload, data, what="git tag")
        return tag.object.sha or tag_object_sha

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET with exponential backoff on 5xx, rate-limit, and timeout errors."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            await self.context.wait_for_rate_limit()
            try:
                resp = await self._client.get(url, params=params)
            except httpx.TimeoutException as exc:
                log.warning(
                    "github.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc
            else:
                update_rate_limit_info(self.context, resp.headers)

                if resp.status_code in (403, 429) and self._is_rate_limited(resp):
                    wait = self._get_retry_after(resp)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    last_exc = RateLimitError(wait or 0)
                    # Without Retry-After the shared reset time governs the pause.
                    if wait is not None:
                        await asyncio.sleep(wait)
                        continue
                elif resp.status_code < 400:
                    return resp
                elif resp.status_code == 404:
                    raise NotFoundError(404, f"not found: {url}")
                elif resp.status_code < 500:
                    raise RemoteLookupError(resp.status_code, resp.reason_phrase or url)
                else:
                    log.warning(
                        "github.server_error",
                        url=url,
                        status=resp.status_code,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    last_exc = RemoteLookupError(resp.status_code, resp.reason_phrase or url)

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Check if a 403/429 response is due to rate limiting."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            try:
                if int(remaining) == 0:
                    return True
            except (ValueError, TypeError):
                pass
        # GitHub uses Retry-After for secondary rate limits
        return "Retry-After" in response.headers or response.status_code == 429

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> int | None:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return max(int(retry_after), 1)
        except (ValueError, TypeError):
            return None


def _release_info(payload: ReleasePayload) -> ReleaseInfo:
    commitish = payload.target_commitish
    return ReleaseInfo(
        version=payload.tag_name,
        sha=commitish if is_sha(commitish) else None,
        published_at=payload.published_at,
        is_prerelease=payload.prerelease,
        name=payload.name or payload.tag_name,
        url=payload.html_url,
        description=payload.body,
    )
