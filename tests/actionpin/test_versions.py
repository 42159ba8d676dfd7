"""Tests for reference classification, normalization and diffing (pure, no I/O)."""

from __future__ import annotations

import pytest

from actionpin.engines.update_checker.models import TagInfo
from actionpin.engines.update_checker.versions import (
    compare_sha,
    diff_versions,
    find_compatible_tag,
    is_semver_like,
    is_sha,
    normalize_update_mode,
    normalize_version,
    parse_version,
    pick_latest_tag,
    specificity,
)

FULL_SHA = "11bd71901bbe5b1630ceea73d27597364c9af683"


# ── TestIsSha ─────────────────────────────────────────────────────────────


class TestIsSha:
    @pytest.mark.parametrize(
        "value",
        [
            "abcdef0",  # 7 chars, shortest
            FULL_SHA,  # 40 chars, longest
            FULL_SHA.upper(),
            "v" + FULL_SHA,
            "V1234567",
            "e2c02d0c8b12e4d0e8b8e0f0e0e0e0e0e0e0e0e",
        ],
    )
    def test_hashes(self, value):
        assert is_sha(value) is True

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "abcdef",  # 6 chars
            FULL_SHA + "0",  # 41 chars
            "v4",
            "v4.2.4",
            "main",
            "release/v1",
            "ghijklm",  # not hex
            "vv1234567",  # only one prefix letter is stripped
            "x1234567",
        ],
    )
    def test_non_hashes(self, value):
        assert is_sha(value) is False


class TestIsSemverLike:
    @pytest.mark.parametrize("value", ["v1", "1", "v1.2", "1.2.3", "v10.0.0", " v4 "])
    def test_accepts(self, value):
        assert is_semver_like(value)

    @pytest.mark.parametrize("value", [None, "", "main", "v1.2.3.4", "v1.2.3-beta", "release-1"])
    def test_rejects(self, value):
        assert not is_semver_like(value)


# ── TestNormalization ─────────────────────────────────────────────────────


class TestNormalization:
    def test_pads_to_three_components(self):
        assert parse_version("v4") == (4, 0, 0)
        assert parse_version("4.1") == (4, 1, 0)
        assert parse_version("V4.1.7") == (4, 1, 7)

    def test_ignores_suffix(self):
        assert parse_version("v4.2.4-beta.1") == (4, 2, 4)

    def test_unparseable(self):
        assert parse_version("main") is None
        assert parse_version(None) is None
        assert parse_version(FULL_SHA) is None

    def test_normalize_version(self):
        assert normalize_version("v4") == "4.0.0"
        assert normalize_version("latest") == "latest"
        assert normalize_version(FULL_SHA) == FULL_SHA
        assert normalize_version("") is None

    def test_specificity(self):
        assert specificity("v1") == 1
        assert specificity("v1.2") == 2
        assert specificity("1.2.3") == 3


# ── TestDiffVersions ──────────────────────────────────────────────────────


class TestDiffVersions:
    def test_major_is_breaking(self):
        diff = diff_versions("v5.0.0", "v4")
        assert diff.severity == "major"
        assert diff.is_breaking is True

    def test_minor(self):
        diff = diff_versions("v4.3.0", "v4.2.9")
        assert diff.severity == "minor"
        assert diff.is_breaking is False

    def test_patch(self):
        diff = diff_versions("4.2.5", "v4.2.4")
        assert diff.severity == "patch"
        assert diff.is_breaking is False

    def test_none(self):
        diff = diff_versions("v4.0.0", "v4")
        assert diff.severity == "none"
        assert diff.is_breaking is False

    def test_representation_does_not_matter(self):
        assert diff_versions("v5", "4.0.0") == diff_versions("5.0.0", "v4")
        assert diff_versions("v4.1", "V4") == diff_versions("4.1.0", "4.0.0")

    def test_pre_1_0_leading_bump_is_breaking(self):
        assert diff_versions("v1.0.0", "v0.9.3").is_breaking is True
        assert diff_versions("v0.4.0", "v0.3.0").is_breaking is False

    def test_unparseable_is_unknown_and_not_breaking(self):
        diff = diff_versions("main", "v4")
        assert diff.severity == "unknown"
        assert diff.is_breaking is False
        assert diff_versions("v5", FULL_SHA).severity == "unknown"

    def test_custom_breaking_policy(self):
        diff = diff_versions("v0.4.0", "v0.3.0", breaking=lambda s: s in ("major", "minor"))
        assert diff.severity == "minor"
        assert diff.is_breaking is True


class TestCompareSha:
    def test_short_and_long(self):
        assert compare_sha(FULL_SHA[:7], FULL_SHA)
        assert compare_sha(FULL_SHA.upper(), FULL_SHA)

    def test_different(self):
        assert not compare_sha("0400d5f", FULL_SHA)

    def test_too_short(self):
        assert not compare_sha("11bd71", FULL_SHA)


# ── TestTagSelection ──────────────────────────────────────────────────────


def _tags(*names: str) -> list[TagInfo]:
    return [TagInfo(tag=name, sha=f"{i:040x}") for i, name in enumerate(names)]


class TestPickLatestTag:
    def test_numeric_not_lexical(self):
        latest = pick_latest_tag(_tags("v9.0.0", "v10.0.0", "v2.1.0"))
        assert latest is not None and latest.tag == "v10.0.0"

    def test_prefers_specific_tag_on_tie(self):
        latest = pick_latest_tag(_tags("v4", "v4.2.4", "v4.2"))
        assert latest is not None and latest.tag == "v4.2.4"

    def test_ignores_prereleases_and_names(self):
        latest = pick_latest_tag(_tags("v5.0.0-beta", "nightly", "v4.1.0"))
        assert latest is not None and latest.tag == "v4.1.0"

    def test_falls_back_to_first_tag(self):
        latest = pick_latest_tag(_tags("nightly", "stable"))
        assert latest is not None and latest.tag == "nightly"

    def test_empty(self):
        assert pick_latest_tag([]) is None


class TestFindCompatibleTag:
    TAGS = _tags("v5.0.0", "v4.3.1", "v4.3.0", "v4.2.9", "v4.2.5", "v4", "v3.9.0")

    def test_minor_mode_keeps_major(self):
        tag = find_compatible_tag(self.TAGS, "v4.2.4", "minor")
        assert tag is not None and tag.tag == "v4.3.1"

    def test_patch_mode_keeps_minor(self):
        tag = find_compatible_tag(self.TAGS, "v4.2.4", "patch")
        assert tag is not None and tag.tag == "v4.2.9"

    def test_major_mode_unrestricted(self):
        tag = find_compatible_tag(self.TAGS, "v4.2.4", "major")
        assert tag is not None and tag.tag == "v5.0.0"

    def test_nothing_newer(self):
        assert find_compatible_tag(self.TAGS, "v4.3.1", "patch") is None

    def test_current_not_semver(self):
        assert find_compatible_tag(self.TAGS, "main", "minor") is None
        assert find_compatible_tag(self.TAGS, None, "minor") is None


class TestNormalizeUpdateMode:
    def test_default(self):
        assert normalize_update_mode(None) == "major"

    def test_case_insensitive(self):
        assert normalize_update_mode("MINOR") == "minor"

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid mode"):
            normalize_update_mode("latest")
