"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from actionpin.exceptions import ConfigurationError

DEFAULT_API_URL = "https://api.github.com"

_GIT_CONFIG_SECTION_RE = re.compile(r"^\[(?P<name>[^\]]+)\]$")
_GIT_CONFIG_DIRECT_RE = re.compile(
    r"^\s*(?:github\.(?:oauth-token|token)|hub\.oauthtoken)\s*=\s*(?P<token>\S[^\n\r]*)$",
    re.MULTILINE,
)
_GITHUB_KEY_RE = re.compile(r"^(?:oauth-token|token)\s*=\s*(?P<val>\S[^\n\r]*)$")
_HUB_KEY_RE = re.compile(r"^oauthtoken\s*=\s*(?P<val>\S[^\n\r]*)$")


@dataclass(frozen=True)
class Settings:
    """Immutable settings for one run."""

    api_url: str = DEFAULT_API_URL
    token: str | None = None
    max_concurrency: int = 5
    request_timeout: float = 30.0
    tags_per_page: int = 100

    def __post_init__(self) -> None:
        parsed = urlparse(self.api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"invalid API URL: {self.api_url!r}")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if not 1 <= self.tags_per_page <= 100:
            raise ConfigurationError("tags_per_page must be between 1 and 100")


def _env_int(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def load_settings(token: str | None = None) -> Settings:
    """Build :class:`Settings` from ``ACTIONPIN_*`` environment variables.

    An explicit *token* wins over discovery via :func:`resolve_github_token`.
    """
    return Settings(
        api_url=os.environ.get("ACTIONPIN_API_URL", DEFAULT_API_URL).rstrip("/"),
        token=token or resolve_github_token(),
        max_concurrency=_env_int("ACTIONPIN_MAX_CONCURRENCY", 5),
        request_timeout=_env_float("ACTIONPIN_REQUEST_TIMEOUT", 30.0),
        tags_per_page=_env_int("ACTIONPIN_TAGS_PER_PAGE", 100),
    )


def resolve_github_token(cwd: Path | None = None) -> str | None:
    """Find a GitHub token without prompting.

    Lookup order: ``GITHUB_TOKEN``, ``GH_TOKEN``, ``gh auth token``, then
    ``github.token`` / ``github.oauth-token`` / ``hub.oauthtoken`` in the
    working directory's ``.git/config``. Returns None when nothing is found.
    """
    for var in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = os.environ.get(var, "").strip()
        if value:
            return value

    token = _token_from_gh_cli()
    if token:
        return token

    git_config = (cwd or Path.cwd()) / ".git" / "config"
    try:
        content = git_config.read_text(encoding="utf-8")
    except OSError:
        return None
    return _token_from_git_config(content)


def _token_from_gh_cli() -> str | None:
    try:
        proc = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=0.5,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def _token_from_git_config(content: str) -> str | None:
    """Extract a token from the text of a git config file."""
    direct = _GIT_CONFIG_DIRECT_RE.search(content)
    if direct:
        return direct.group("token").strip()

    section: str | None = None
    for raw_line in content.splitlines():
        line = raw_line.strip()
        header = _GIT_CONFIG_SECTION_RE.match(line)
        if header:
            section = header.group("name").lower()
            continue
        if section == "github":
            m = _GITHUB_KEY_RE.match(line)
            if m:
                return m.group("val").strip()
        elif section == "hub":
            m = _HUB_KEY_RE.match(line)
            if m:
                return m.group("val").strip()
    return None
