from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(slots=True)
class FileInfo:
    name: str
    sha1: str
    md5: str
    size: int
    content_type: str
    info: dict[str, str]
    status: str
    timestamp: datetime


@dataclass(slots=True)
class FilePart:
    """A piece of a started, but not finished, large file upload."""

    number: int
    sha1: str
    size: int


@dataclass(frozen=True, slots=True)
class Lease:
    """An upload endpoint and the token authorizing uploads to it."""

    uri: str
    token: str = field(repr=False)


def millitime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


__all__ = ["FileInfo", "FilePart", "Lease", "millitime"]
