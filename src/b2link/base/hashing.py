from __future__ import annotations

import enum
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Any, Protocol

HASH_LENGTH = 40  # hex-encoded SHA1
DEFAULT_CHUNK_SIZE = 64 * 1024


class DeferredHash(enum.Enum):
    """Hash placeholder for bodies whose SHA1 is appended as trailing hex digits.

    Pass ``DeferredHash.HEX_DIGITS_AT_END`` instead of a hash string when the
    body ends with the 40 hex digits of its own SHA1; the digits are read back
    from the stream as it is sent.
    """

    HEX_DIGITS_AT_END = "hex_digits_at_end"


ContentHash = str | DeferredHash


class SupportsRead(Protocol):
    def read(self, size: int = -1) -> bytes:  # pragma: no cover - Protocol
        ...


Body = bytes | bytearray | memoryview | str | SupportsRead | Iterable[bytes] | AsyncIterable[bytes]


async def aiter_chunks(body: Any, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield ``body`` as byte chunks of at most ``chunk_size`` bytes."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if isinstance(body, (bytes, bytearray, memoryview)):
        view = memoryview(body)
        offset = 0
        while offset < len(view):
            end = min(offset + chunk_size, len(view))
            yield view[offset:end].tobytes()
            offset = end
        return
    if hasattr(body, "read"):
        while True:
            chunk = body.read(chunk_size)
            if not chunk:
                break
            yield bytes(chunk)
        return
    if hasattr(body, "__aiter__"):
        async for chunk in body:
            yield bytes(chunk)
        return
    for chunk in body:
        yield bytes(chunk)


def stream_content(body: Any) -> bytes | AsyncIterator[bytes]:
    """Prepare ``body`` for sending: bytes stay bytes, anything else streams."""
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    return aiter_chunks(body)


class KeepFinalBytes:
    """Pass a body through unchanged while keeping its last 40 bytes.

    ``size`` is the declared body length. Chunks may be any size relative to
    the 40-byte window. For bodies shorter than 40 bytes the capture is
    right-aligned in the buffer and ``captured`` returns only those bytes.
    """

    def __init__(self, source: Any, size: int) -> None:
        self._source = source
        self._size = size
        self._remain = size
        self._buf = bytearray(HASH_LENGTH)

    def observe(self, chunk: bytes) -> bytes:
        n = len(chunk)
        pos = self._size - self._remain
        window_start = self._size - HASH_LENGTH
        lo = max(pos, window_start)
        hi = min(pos + n, self._size)
        if lo < hi:
            self._buf[lo - window_start : hi - window_start] = chunk[lo - pos : hi - pos]
        self._remain -= n
        return chunk

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in aiter_chunks(self._source):
            yield self.observe(chunk)

    @property
    def remaining(self) -> int:
        return self._remain

    @property
    def captured(self) -> bytes:
        return bytes(self._buf[HASH_LENGTH - min(HASH_LENGTH, max(self._size, 0)) :])

    @property
    def hex_digest(self) -> str:
        return self.captured.decode("ascii", errors="replace")


__all__ = [
    "Body",
    "ContentHash",
    "DeferredHash",
    "KeepFinalBytes",
    "aiter_chunks",
    "stream_content",
]
