"""UpdateCheckRunner — fans resolution out over a bounded worker pool."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import replace

import httpx
import structlog

from actionpin.core.github import parse_action_name, repo_key
from actionpin.engines.update_checker.annotations import read_inline_version_comment
from actionpin.engines.update_checker.context import ClientContext
from actionpin.engines.update_checker.github_client import GitHubClient
from actionpin.engines.update_checker.merge import dedupe
from actionpin.engines.update_checker.models import (
    RESOLVABLE_TYPES,
    ActionReference,
    CheckResult,
    ResolvedVersion,
)
from actionpin.engines.update_checker.resolver import (
    ResolverOptions,
    VersionResolver,
    build_record,
)
from actionpin.engines.update_checker.versions import is_sha
from actionpin.exceptions import ServiceUnavailableError

log = structlog.get_logger("actionpin.engine")

_MAX_CONCURRENCY = 5

# (name, version, annotation): references sharing it resolve identically.
_ResolveKey = tuple[str, str | None, str | None]


def _resolve_key(ref: ActionReference) -> _ResolveKey:
    return (ref.name, ref.version, ref.annotation)


def _group_key(ref: ActionReference) -> str:
    try:
        return repo_key(*parse_action_name(ref.name))
    except ValueError:
        return ref.name


class UpdateCheckRunner:
    """Resolve many references with bounded concurrency.

    References are grouped by repository; each group is one job and at most
    *max_concurrency* jobs run at once. Within a job, distinct references
    resolve one after another so the repository's tag listing is fetched
    once. Before every dispatch the shared rate-limit budget is consulted.
    """

    def __init__(
        self,
        client: GitHubClient,
        options: ResolverOptions | None = None,
        *,
        max_concurrency: int = _MAX_CONCURRENCY,
        read_annotations: bool = True,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._client = client
        self._resolver = VersionResolver(client, options)
        self._max_concurrency = max_concurrency
        self._read_annotations = read_annotations
        self._stop = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Stop dispatching; in-flight lookups finish and are kept."""
        self._stop.set()

    async def run_all(self, references: Iterable[ActionReference]) -> CheckResult:
        """Resolve every resolvable reference and build one record per input.

        Non-external references (local, docker, composite) are ignored.
        Results carry no ordering guarantee.
        """
        refs = [r for r in references if r.type in RESOLVABLE_TYPES]
        if self._read_annotations:
            refs = self._with_annotations(refs)
        result = CheckResult()
        if not refs:
            return result

        groups: dict[str, list[ActionReference]] = {}
        for ref in refs:
            bucket = groups.setdefault(_group_key(ref), [])
            if all(_resolve_key(seen) != _resolve_key(ref) for seen in bucket):
                bucket.append(ref)

        sem = asyncio.Semaphore(self._max_concurrency)
        context = self._client.context

        async def _run_group(group: list[ActionReference]) -> dict[_ResolveKey, ResolvedVersion]:
            resolved: dict[_ResolveKey, ResolvedVersion] = {}
            async with sem:
                for ref in group:
                    await context.wait_for_rate_limit(self._stop)
                    if self._stop.is_set():
                        log.info("runner.stopped", pending=len(group) - len(resolved))
                        break
                    resolved[_resolve_key(ref)] = await self._resolver.resolve(ref)
            return resolved

        outcomes = await asyncio.gather(*(_run_group(g) for g in groups.values()))

        resolved: dict[_ResolveKey, ResolvedVersion] = {}
        for outcome in outcomes:
            resolved.update(outcome)

        if resolved and all(r.unreachable for r in resolved.values()):
            raise ServiceUnavailableError(
                f"could not reach {context.base_url} for any of {len(resolved)} lookup(s)"
            )

        for ref in dedupe(refs):
            outcome = resolved.get(_resolve_key(ref))
            if outcome is None:
                continue
            result.records.append(build_record(ref, outcome))
            if outcome.status == "failed":
                result.errors.append(f"{ref.name}@{ref.version}: {outcome.error}")

        result.cancelled = self._stop.is_set()
        log.info(
            "runner.done",
            references=len(refs),
            lookups=len(resolved),
            updates=len(result.updates),
            failed=len(result.failed),
            skipped=len(result.skipped),
            cancelled=result.cancelled,
            rate_limit_remaining=context.rate_limit_remaining,
        )
        return result

    @staticmethod
    def _with_annotations(refs: list[ActionReference]) -> list[ActionReference]:
        """Fill missing annotations of hash pins from their source lines."""
        file_cache: dict[str, str] = {}
        out: list[ActionReference] = []
        for ref in refs:
            if ref.annotation is None and is_sha(ref.version) and ref.file and ref.line:
                annotation = read_inline_version_comment(ref.file, ref.line, file_cache)
                if annotation:
                    ref = replace(ref, annotation=annotation)
            out.append(ref)
        return out


async def resolve_all(
    context: ClientContext,
    references: Iterable[ActionReference],
    *,
    options: ResolverOptions | None = None,
    max_concurrency: int = _MAX_CONCURRENCY,
    read_annotations: bool = True,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CheckResult:
    """Resolve *references* against the API described by *context*."""
    async with GitHubClient(context, timeout=timeout, transport=transport) as client:
        runner = UpdateCheckRunner(
            client,
            options,
            max_concurrency=max_concurrency,
            read_annotations=read_annotations,
        )
        return await runner.run_all(references)
