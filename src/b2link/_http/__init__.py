"""Shared HTTP infrastructure for the B2 client."""

from .clients import create_base_async_client
from .config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    HTTPConfig,
    get_api_base,
    get_timeout,
)
from .transport import (
    AsyncTransport,
    JSONBody,
    RequestBody,
    StreamBody,
)

__all__ = [
    "DEFAULT_API_BASE_URL",
    "DEFAULT_TIMEOUT",
    "DEFAULT_USER_AGENT",
    "HTTPConfig",
    "get_api_base",
    "get_timeout",
    "AsyncTransport",
    "JSONBody",
    "StreamBody",
    "RequestBody",
    "create_base_async_client",
]
