"""HTTP configuration for B2 API clients."""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

DEFAULT_API_BASE_URL = "https://api.backblazeb2.com"
DEFAULT_USER_AGENT = "b2link/0.1.0"
DEFAULT_TIMEOUT = 60.0


def get_api_base() -> str:
    return os.getenv("B2LINK_API_BASE") or DEFAULT_API_BASE_URL


def get_timeout() -> float:
    value = os.getenv("B2LINK_TIMEOUT")
    try:
        return float(value) if value is not None else DEFAULT_TIMEOUT
    except ValueError:
        return DEFAULT_TIMEOUT


@dataclass
class HTTPConfig:
    """Per-session request options.

    The test-mode switches ask the service to inject failures (failed
    uploads, expired account tokens, exceeded caps) and exist for fault
    injection against the live service.
    """

    api_base: str | None = None
    user_agent: str | None = None
    timeout: float | None = None
    transport: httpx.AsyncBaseTransport | None = None
    fail_some_uploads: bool = False
    expire_tokens: bool = False
    cap_exceeded: bool = False

    def get_api_base(self) -> str:
        return self.api_base or get_api_base()

    def get_timeout(self) -> float:
        return self.timeout if self.timeout is not None else get_timeout()

    def get_user_agent(self) -> str:
        prefix = self.user_agent or os.getenv("B2LINK_USER_AGENT")
        if prefix:
            return f"{prefix} {DEFAULT_USER_AGENT}"
        return DEFAULT_USER_AGENT

    def add_user_agent(self, agent: str) -> None:
        """Prepend ``agent`` to the User-Agent prefix; may be called repeatedly."""
        if not self.user_agent:
            self.user_agent = agent
            return
        self.user_agent = f"{agent} {self.user_agent}"

    def test_modes(self) -> list[str]:
        modes: list[str] = []
        if self.fail_some_uploads:
            modes.append("fail_some_uploads")
        if self.expire_tokens:
            modes.append("expire_some_account_authorization_tokens")
        if self.cap_exceeded:
            modes.append("force_cap_exceeded")
        return modes

    def get_headers(self) -> dict[str, str]:
        """Headers stamped on every request made with this config."""
        headers = {"user-agent": self.get_user_agent()}
        modes = self.test_modes()
        if modes:
            headers["x-bz-test-mode"] = ", ".join(modes)
        return headers


__all__ = [
    "HTTPConfig",
    "DEFAULT_API_BASE_URL",
    "DEFAULT_USER_AGENT",
    "DEFAULT_TIMEOUT",
    "get_api_base",
    "get_timeout",
]
