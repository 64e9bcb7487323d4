"""HTTP transport for the async B2 client."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any

import httpx

from .clients import create_base_async_client
from .config import HTTPConfig


@dataclass(frozen=True, slots=True)
class JSONBody:
    """JSON request body - automatically sets Content-Type to application/json."""

    data: Any

    def encode(self) -> bytes:
        return json.dumps(self.data, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True, slots=True)
class StreamBody:
    """Raw request body with an explicit byte length.

    ``content`` may be bytes or an async iterable of byte chunks. The length is
    always sent as ``Content-Length``; a streaming body never falls back to
    chunked transfer encoding.
    """

    content: bytes | AsyncIterable[bytes]
    size: int


RequestBody = JSONBody | StreamBody | None


class AsyncTransport:
    """Asynchronous HTTP transport using a long-lived httpx.AsyncClient.

    Responses are returned unread (``stream=True``); callers own closing them.
    """

    def __init__(self, config: HTTPConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_base_async_client(self._config)
        return self._client

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: RequestBody = None,
    ) -> httpx.Response:
        """Send a request and return the response with its body unread."""
        request_headers = dict(headers or {})

        content: bytes | AsyncIterable[bytes] | None = None
        if isinstance(body, JSONBody):
            content = body.encode()
            request_headers["Content-Type"] = "application/json"
            request_headers["Content-Length"] = str(len(content))
        elif isinstance(body, StreamBody):
            # An empty iterator with length 0 would be sent chunked.
            content = body.content if body.size > 0 else b""
            request_headers["Content-Length"] = str(body.size)

        client = self._get_client()
        request = client.build_request(
            method,
            url,
            content=content,
            headers=request_headers,
        )
        return await client.send(request, stream=True)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = [
    "AsyncTransport",
    "JSONBody",
    "StreamBody",
    "RequestBody",
]
