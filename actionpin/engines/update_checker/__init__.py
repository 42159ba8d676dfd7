"""Update checker engine — resolve action references to their newest versions."""

from actionpin.engines.update_checker.context import ClientContext, update_rate_limit_info
from actionpin.engines.update_checker.github_client import GitHubClient
from actionpin.engines.update_checker.merge import dedupe, merge_scan_results
from actionpin.engines.update_checker.models import (
    ActionReference,
    CheckResult,
    ResolutionRecord,
    ResolvedVersion,
    ScanResult,
    TagInfo,
    VersionDiff,
)
from actionpin.engines.update_checker.resolver import ResolverOptions, VersionResolver
from actionpin.engines.update_checker.runner import UpdateCheckRunner, resolve_all
from actionpin.engines.update_checker.versions import diff_versions, is_sha

__all__ = [
    "ActionReference",
    "CheckResult",
    "ClientContext",
    "GitHubClient",
    "ResolutionRecord",
    "ResolvedVersion",
    "ResolverOptions",
    "ScanResult",
    "TagInfo",
    "UpdateCheckRunner",
    "VersionDiff",
    "VersionResolver",
    "dedupe",
    "diff_versions",
    "is_sha",
    "merge_scan_results",
    "resolve_all",
    "update_rate_limit_info",
]
