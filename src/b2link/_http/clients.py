"""Factory for the pre-configured httpx client shared by one session."""

from __future__ import annotations

from collections.abc import Callable, Mapping

import httpx

from .config import HTTPConfig


def _create_static_headers_hook(
    headers: Mapping[str, str],
) -> Callable[[httpx.Request], object]:
    """Create a request hook that stamps static headers on every request.

    Overwrites the values httpx fills in by default (such as its own
    User-Agent).
    """

    async def hook(request: httpx.Request) -> None:
        request.headers.update(headers)

    return hook


def create_base_async_client(config: HTTPConfig) -> httpx.AsyncClient:
    """Create an async httpx client for the B2 API.

    Auth is not handled here: B2 calls carry either the account token or an
    upload lease token, so ``Authorization`` is set per request. Headers are
    captured when the client is built, so User-Agent and test-mode changes
    must be made on ``config`` before the first request.

    Args:
        config: Session options. Supplies the timeout, the optional custom
            transport and the static User-Agent / test-mode headers.
    """
    options: dict = {
        "timeout": httpx.Timeout(config.get_timeout()),
        "event_hooks": {"request": [_create_static_headers_hook(config.get_headers())]},
    }
    if config.transport is not None:
        options["transport"] = config.transport
    return httpx.AsyncClient(**options)


__all__ = ["create_base_async_client"]
