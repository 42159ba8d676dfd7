#!/usr/bin/env python3
"""Standalone update checker for pinned GitHub Action references.

Usage:
    python check_actions.py actions/checkout@v4 actions/setup-node@v3
    python check_actions.py actions/checkout@11bd71901bbe5b1630ceea73d27597364c9af683#v4.2.2
    python check_actions.py --input refs.json --json
    python check_actions.py actions/cache@v3 --mode minor --log-level debug

``--input`` takes a JSON list of objects with ``name``, ``version`` and
optional ``file``, ``line``, ``job``, ``annotation``, ``type`` keys, as
written by a workflow scanner.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from actionpin.core.config import load_settings
from actionpin.core.logging import setup_logging
from actionpin.engines.update_checker import (
    ActionReference,
    CheckResult,
    ClientContext,
    ResolverOptions,
    resolve_all,
)
from actionpin.engines.update_checker.versions import normalize_update_mode
from actionpin.exceptions import ActionPinError


def _parse_target(target: str) -> ActionReference:
    """``owner/repo@ref`` with an optional ``#annotation`` suffix."""
    spec, _, annotation = target.partition("#")
    name, sep, version = spec.partition("@")
    if not sep or not name or not version:
        raise ValueError(f"expected owner/repo@ref, got {target!r}")
    return ActionReference(name=name, version=version, annotation=annotation or None)


def _load_input(path: Path) -> list[ActionReference]:
    rows = json.loads(path.read_text(encoding="utf-8"))
    return [
        ActionReference(
            name=row["name"],
            version=row.get("version"),
            type=row.get("type", "external"),
            file=row.get("file"),
            line=row.get("line"),
            job=row.get("job"),
            uses=row.get("uses"),
            annotation=row.get("annotation"),
        )
        for row in rows
    ]


def _print_result(result: CheckResult, as_json: bool) -> None:
    if as_json:
        rows = [
            {
                "name": r.reference.name,
                "file": r.reference.file,
                "line": r.reference.line,
                "current_version": r.current_version,
                "effective_version": r.effective_version,
                "latest_version": r.latest_version,
                "latest_sha": r.latest_sha,
                "severity": r.severity,
                "is_breaking": r.is_breaking,
                "has_update": r.has_update,
                "status": r.status,
                "skip_reason": r.skip_reason,
                "blocked_by_mode": r.blocked_by_mode,
                "published_at": r.published_at.isoformat() if r.published_at else None,
                "error": r.error,
            }
            for r in result.records
        ]
        print(json.dumps(rows, indent=2))
        return

    if not result.records:
        print("No external actions to check.")
        return

    print(
        f"{len(result.updates)} update(s), {len(result.up_to_date)} up to date, "
        f"{len(result.skipped)} skipped, {len(result.failed)} failed\n"
    )
    for r in sorted(result.records, key=lambda rec: rec.reference.name):
        current = r.display_version or "?"
        if r.status == "failed":
            print(f"  ✗ {r.reference.name} {current}  ({r.error})")
        elif r.status == "skipped":
            print(f"  - {r.reference.name} {current}  (skipped: {r.skip_reason})")
        elif r.has_update:
            marker = "!" if r.is_breaking else "↑"
            sha = f" @ {r.latest_sha[:7]}" if r.latest_sha else ""
            target = f"{r.latest_version}{sha}"
            print(f"  {marker} {r.reference.name} {current} -> {target}  [{r.severity}]")
        else:
            note = " (newer version outside mode)" if r.blocked_by_mode else ""
            print(f"  ✓ {r.reference.name} {current}{note}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Check pinned GitHub Actions for updates")
    parser.add_argument("targets", nargs="*", help="owner/repo@ref[#annotation] references")
    parser.add_argument("--input", type=Path, default=None, help="JSON file with references")
    parser.add_argument("--mode", default="major", help="major, minor or patch (default: major)")
    parser.add_argument("--include-branches", action="store_true", help="Check branch refs too")
    parser.add_argument("--dates", action="store_true", help="Fetch release publish dates")
    parser.add_argument("--token", default=None, help="GitHub token (default: discovered)")
    parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    parser.add_argument("--log-level", default=None, help="Log level (default: env or INFO)")
    parser.add_argument("--log-format", default=None, choices=["console", "json"], help="Log format")
    args = parser.parse_args()

    try:
        setup_logging(args.log_level, args.log_format)
        refs = [_parse_target(t) for t in args.targets]
        if args.input is not None:
            refs.extend(_load_input(args.input))
        mode = normalize_update_mode(args.mode)
    except (ActionPinError, ValueError, KeyError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    if not refs:
        parser.error("no references given")

    try:
        settings = load_settings(args.token)
        options = ResolverOptions(
            mode=mode,
            include_branches=args.include_branches,
            fetch_dates=args.dates,
            tags_per_page=settings.tags_per_page,
        )
        result = asyncio.run(
            resolve_all(
                ClientContext.from_settings(settings),
                refs,
                options=options,
                max_concurrency=settings.max_concurrency,
                timeout=settings.request_timeout,
            )
        )
    except ActionPinError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    _print_result(result, args.as_json)


if __name__ == "__main__":
    main()
