"""Tests for the run-scoped client context: rate-limit tracking and caches."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from actionpin.engines.update_checker.context import (
    ANONYMOUS_LIMIT,
    AUTHENTICATED_LIMIT,
    MISSING,
    ClientContext,
    update_rate_limit_info,
)
from actionpin.engines.update_checker.models import TagInfo


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


# ── TestUpdateRateLimitInfo ───────────────────────────────────────────────


class TestUpdateRateLimitInfo:
    def test_string_values(self, context):
        update_rate_limit_info(
            context, {"x-ratelimit-remaining": "42", "x-ratelimit-reset": "1700000000"}
        )
        assert context.rate_limit_remaining == 42
        assert context.rate_limit_reset == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)

    def test_numeric_values(self, context):
        update_rate_limit_info(context, {"x-ratelimit-remaining": 7, "x-ratelimit-reset": 1700000060})
        assert context.rate_limit_remaining == 7
        assert context.rate_limit_reset.timestamp() == 1_700_000_060

    def test_header_names_case_insensitive(self, context):
        update_rate_limit_info(context, {"X-RateLimit-Remaining": "3"})
        assert context.rate_limit_remaining == 3

    def test_httpx_headers(self, context):
        headers = httpx.Headers({"X-RateLimit-Remaining": "11", "X-RateLimit-Reset": "1700000000"})
        update_rate_limit_info(context, headers)
        assert context.rate_limit_remaining == 11

    def test_missing_values_keep_state(self, context):
        update_rate_limit_info(context, {"x-ratelimit-remaining": "9", "x-ratelimit-reset": "1700000000"})
        update_rate_limit_info(context, {"content-type": "application/json"})
        assert context.rate_limit_remaining == 9
        assert context.rate_limit_reset.timestamp() == 1_700_000_000

    @pytest.mark.parametrize("garbage", ["", "soon", "-1", "12abc", None, True, float("nan")])
    def test_invalid_values_keep_state(self, context, garbage):
        update_rate_limit_info(context, {"x-ratelimit-remaining": "9"})
        update_rate_limit_info(
            context, {"x-ratelimit-remaining": garbage, "x-ratelimit-reset": garbage}
        )
        assert context.rate_limit_remaining == 9

    def test_last_write_wins(self, context):
        for remaining in ("100", "99", "98"):
            update_rate_limit_info(context, {"x-ratelimit-remaining": remaining})
        assert context.rate_limit_remaining == 98


# ── TestClientContext ─────────────────────────────────────────────────────


class TestClientContext:
    def test_initial_budget_depends_on_token(self):
        assert ClientContext("https://x.test", token="t").rate_limit_remaining == AUTHENTICATED_LIMIT
        assert ClientContext("https://x.test").rate_limit_remaining == ANONYMOUS_LIMIT

    def test_base_url_trailing_slash(self):
        assert ClientContext("https://x.test/").base_url == "https://x.test"

    def test_cache_distinguishes_missing_from_none(self, context):
        assert context.tag_sha.get("o/r#v1") is MISSING
        context.tag_sha.set("o/r#v1", None)
        assert context.tag_sha.get("o/r#v1") is None
        assert "o/r#v1" in context.tag_sha

    def test_caches_are_independent(self, context):
        context.tag_info.set("o/r#v1", TagInfo(tag="v1", sha="a" * 40))
        assert context.tag_sha.get("o/r#v1") is MISSING
        assert len(context.tag_info) == 1
        assert len(context.ref_types) == 0

    def test_seconds_until_reset(self):
        clock = FakeClock(1_000.0)
        ctx = ClientContext("https://x.test", clock=clock)
        assert ctx.seconds_until_reset() is None

        update_rate_limit_info(ctx, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1030"})
        assert ctx.seconds_until_reset() == pytest.approx(30.0)

        clock.now = 1_030.0
        assert ctx.seconds_until_reset() is None

    def test_exhausted_budget_past_reset_does_not_block(self):
        clock = FakeClock(2_000.0)
        ctx = ClientContext("https://x.test", clock=clock)
        update_rate_limit_info(ctx, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1500"})
        assert ctx.seconds_until_reset() is None


class TestWaitForRateLimit:
    @pytest.mark.anyio
    async def test_no_wait_with_budget(self, context):
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            waited = await context.wait_for_rate_limit()
        assert waited == 0.0
        mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_waits_until_reset(self):
        clock = FakeClock(1_000.0)
        ctx = ClientContext("https://x.test", token="t", clock=clock)
        update_rate_limit_info(ctx, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1045"})

        with patch("asyncio.sleep", side_effect=clock.sleep) as mock_sleep:
            waited = await ctx.wait_for_rate_limit()

        assert waited == pytest.approx(45.0)
        assert clock.now >= 1_045.0
        mock_sleep.assert_called_once()

    @pytest.mark.anyio
    async def test_stop_already_set_skips_wait(self):
        clock = FakeClock(1_000.0)
        ctx = ClientContext("https://x.test", token="t", clock=clock)
        update_rate_limit_info(ctx, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "4600"})
        stop = asyncio.Event()
        stop.set()

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            waited = await ctx.wait_for_rate_limit(stop)

        assert waited == 0.0
        mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_stop_interrupts_wait(self):
        clock = FakeClock(1_000.0)
        ctx = ClientContext("https://x.test", token="t", clock=clock)
        update_rate_limit_info(ctx, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "4600"})
        stop = asyncio.Event()

        async def _stalled_sleep(seconds: float) -> None:
            stop.set()
            await asyncio.Event().wait()

        with patch("asyncio.sleep", side_effect=_stalled_sleep) as mock_sleep:
            waited = await ctx.wait_for_rate_limit(stop)

        assert waited == 0.0
        assert clock.now == 1_000.0
        mock_sleep.assert_called_once()
