"""Merge results of independent scan passes."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from actionpin.engines.update_checker.models import ActionReference, ResolutionRecord, ScanResult

T = TypeVar("T", ActionReference, ResolutionRecord)


def dedupe(items: Iterable[T]) -> list[T]:
    """Drop repeats of the (file, line, name, version) identity; first wins."""
    seen: set[tuple[str | None, int | None, str, str | None]] = set()
    unique: list[T] = []
    for item in items:
        key = item.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def merge_scan_results(results: Iterable[ScanResult]) -> ScanResult:
    """Combine N scan results into one.

    Workflow and composite-action keys are prefixed with the pass index
    (``"0:..."``, ``"1:..."``) so equal paths from different roots stay
    apart. Actions are de-duplicated by identity in input order.
    """
    merged = ScanResult()
    actions: list[ActionReference] = []
    for index, result in enumerate(results):
        for key, refs in result.workflows.items():
            merged.workflows[f"{index}:{key}"] = refs
        for key, path in result.composite_actions.items():
            merged.composite_actions[f"{index}:{key}"] = path
        actions.extend(result.actions)
    merged.actions = dedupe(actions)
    return merged
