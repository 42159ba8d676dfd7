"""Shared fixtures for actionpin tests — no network access required."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from actionpin.engines.update_checker.context import ClientContext
from actionpin.engines.update_checker.github_client import GitHubClient

API_URL = "https://api.github.test"

Route = tuple[int, Any, dict[str, str]] | Callable[[httpx.Request], httpx.Response]


class FakeGitHub:
    """In-memory stand-in for the REST API behind ``httpx.MockTransport``.

    Unknown paths answer 404. Every response carries rate-limit headers whose
    remaining count drops by one per request.
    """

    def __init__(self, remaining: int = 4999, reset: int = 1_700_000_000) -> None:
        self.routes: dict[str, Route] = {}
        self.calls: list[str] = []
        self.remaining = remaining
        self.reset = reset

    def add(
        self,
        path: str,
        payload: Any = None,
        *,
        status: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.routes[path] = (status, payload, headers or {})

    def add_tags(self, owner: str, repo: str, tags: list[tuple[str, str]]) -> None:
        self.add(
            f"/repos/{owner}/{repo}/tags",
            [{"name": name, "commit": {"sha": sha, "url": "x"}} for name, sha in tags],
        )

    def count(self, path: str) -> int:
        return self.calls.count(path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        route = self.routes.get(path)
        if callable(route):
            return route(request)
        status, payload, extra = route or (404, {"message": "Not Found"}, {})
        headers = {
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
            **extra,
        }
        self.remaining = max(self.remaining - 1, 0)
        return httpx.Response(status, json=payload, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def context() -> ClientContext:
    return ClientContext(API_URL, token="test-token")


@pytest.fixture
def make_client(github: FakeGitHub):
    def _make(ctx: ClientContext) -> GitHubClient:
        return GitHubClient(ctx, timeout=5.0, transport=github.transport)

    return _make
