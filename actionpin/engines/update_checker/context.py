"""Run-scoped client context: rate-limit state and reference caches.

One :class:`ClientContext` exists per run and is shared by every concurrent
lookup. All reads and writes of its mutable fields go through a single lock;
the lock is never held across an ``await``.
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

import structlog

from actionpin.core.config import Settings
from actionpin.engines.update_checker.models import RefType, ReleaseInfo, TagInfo

log = structlog.get_logger("actionpin.engine")

V = TypeVar("V")

AUTHENTICATED_LIMIT = 5000
ANONYMOUS_LIMIT = 60

_REMAINING_HEADER = "x-ratelimit-remaining"
_RESET_HEADER = "x-ratelimit-reset"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class RefCache(Generic[V]):
    """A key→value map guarded by the owning context's lock.

    Entries live for the whole run. ``None`` is a legitimate cached value
    (a remembered miss); use :data:`MISSING` to detect absence.
    """

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self._data: dict[str, V] = {}

    def get(self, key: str, default: Any = MISSING) -> V | Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class ClientContext:
    """Shared state for all lookups of one run."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._clock = clock
        self._lock = threading.Lock()
        self._rate_limit_remaining = AUTHENTICATED_LIMIT if token else ANONYMOUS_LIMIT
        self._rate_limit_reset = datetime.fromtimestamp(clock(), tz=timezone.utc)

        self.ref_types: RefCache[RefType | None] = RefCache(self._lock)
        self.tag_info: RefCache[TagInfo | None] = RefCache(self._lock)
        self.tag_sha: RefCache[str | None] = RefCache(self._lock)
        self.tags: RefCache[tuple[TagInfo, ...]] = RefCache(self._lock)
        self.releases: RefCache[ReleaseInfo | None] = RefCache(self._lock)

    @classmethod
    def from_settings(cls, settings: Settings) -> ClientContext:
        return cls(settings.api_url, settings.token)

    # ── rate-limit state ───────────────────────────────────────────────────

    @property
    def rate_limit_remaining(self) -> int:
        with self._lock:
            return self._rate_limit_remaining

    @property
    def rate_limit_reset(self) -> datetime:
        with self._lock:
            return self._rate_limit_reset

    def _apply_rate_limit(self, remaining: int | None, reset: datetime | None) -> None:
        with self._lock:
            if remaining is not None:
                self._rate_limit_remaining = remaining
            if reset is not None:
                self._rate_limit_reset = reset

    def seconds_until_reset(self) -> float | None:
        """Seconds to wait before the next call, or None when budget remains."""
        with self._lock:
            if self._rate_limit_remaining > 0:
                return None
            wait = self._rate_limit_reset.timestamp() - self._clock()
        return wait if wait > 0 else None

    async def wait_for_rate_limit(self, stop: asyncio.Event | None = None) -> float:
        """Suspend while the shared budget is exhausted and not yet reset.

        Every worker calls this before issuing a request, so an exhausted
        budget pauses all of them until the reset time passes. Setting *stop*
        ends the wait early. Returns the number of seconds slept.
        """
        waited = 0.0
        while stop is None or not stop.is_set():
            wait = self.seconds_until_reset()
            if wait is None:
                break
            log.warning(
                "github.rate_limit_wait",
                wait_seconds=round(wait, 1),
                reset_at=self.rate_limit_reset.isoformat(),
            )
            if stop is None:
                await asyncio.sleep(wait)
            elif not await _sleep_unless(stop, wait):
                break
            waited += wait
        return waited


async def _sleep_unless(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep for *seconds* or until *stop* is set. True when the full time passed."""
    sleeper = asyncio.ensure_future(asyncio.sleep(seconds))
    stopper = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        sleeper.cancel()
        stopper.cancel()
    return not stop.is_set()


def update_rate_limit_info(context: ClientContext, headers: Mapping[str, Any]) -> None:
    """Record the remaining budget and reset time carried by response *headers*.

    Values may be strings or numbers; missing or unparseable values leave the
    previous state untouched. The reset header is epoch seconds.
    """
    remaining = _parse_count(_header(headers, _REMAINING_HEADER))
    reset_epoch = _parse_count(_header(headers, _RESET_HEADER))

    reset: datetime | None = None
    if reset_epoch is not None:
        try:
            reset = datetime.fromtimestamp(reset_epoch, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            reset = None

    context._apply_rate_limit(remaining, reset)


def _header(headers: Mapping[str, Any], name: str) -> Any:
    value = headers.get(name)
    if value is not None:
        return value
    # Plain dicts are case-sensitive; httpx.Headers is not.
    for key, candidate in headers.items():
        if isinstance(key, str) and key.lower() == name:
            return candidate
    return None


def _parse_count(value: Any) -> int | None:
    """Parse a non-negative integer header value, returning None on failure."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        result = int(value)
    elif isinstance(value, (str, bytes)):
        try:
            result = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return result if result >= 0 else None
