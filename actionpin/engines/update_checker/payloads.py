"""Shapes of the GitHub REST payloads the update checker reads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from actionpin.exceptions import MalformedResponseError

M = TypeVar("M", bound=BaseModel)


class CommitRef(BaseModel):
    sha: str


class TagPayload(BaseModel):
    """Item of ``GET /repos/{owner}/{repo}/tags``."""

    name: str
    commit: CommitRef | None = None


class ReleasePayload(BaseModel):
    """``GET /repos/{owner}/{repo}/releases/...``."""

    tag_name: str
    name: str | None = None
    body: str | None = None
    prerelease: bool = False
    published_at: datetime | None = None
    html_url: str | None = None
    target_commitish: str | None = None


class GitObject(BaseModel):
    type: str  # "commit" or "tag"
    sha: str


class GitRefPayload(BaseModel):
    """``GET /repos/{owner}/{repo}/git/refs/{tags|heads}/{ref}``."""

    ref: str | None = None
    object: GitObject


class Signature(BaseModel):
    date: datetime | None = None


class AnnotatedObject(BaseModel):
    sha: str | None = None


class GitTagPayload(BaseModel):
    """``GET /repos/{owner}/{repo}/git/tags/{sha}`` (annotated tag)."""

    object: AnnotatedObject
    tagger: Signature | None = None
    message: str | None = None


_TAG_LIST = TypeAdapter(list[TagPayload])


def parse_payload(model: type[M], data: Any, *, what: str) -> M:
    """Validate *data* against *model*, raising MalformedResponseError."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"unexpected {what} payload: {exc.error_count()} error(s)") from exc


def parse_tag_list(data: Any) -> list[TagPayload]:
    try:
        return _TAG_LIST.validate_python(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"unexpected tag list payload: {exc.error_count()} error(s)") from exc
