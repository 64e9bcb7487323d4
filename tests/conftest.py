"""Shared fixtures for all tests."""

from collections.abc import Callable, Generator

import httpx
import pytest

from b2link import HTTPConfig
from b2link.base import B2, RequestClient, Session

API_BASE = "https://api.b2.test"
DOWNLOAD_BASE = "https://f000.b2.test"
S3_BASE = "https://s3.b2.test"
ACCOUNT_TOKEN = "account-token-123"


@pytest.fixture
def mock_env_clear(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear all b2link-related environment variables for testing."""
    for var in ("B2LINK_API_BASE", "B2LINK_TIMEOUT", "B2LINK_USER_AGENT"):
        monkeypatch.delenv(var, raising=False)
    yield


def build_session(**overrides: object) -> Session:
    fields: dict = {
        "account_id": "acct-1",
        "auth_token": ACCOUNT_TOKEN,
        "api_uri": API_BASE,
        "download_uri": DOWNLOAD_BASE,
        "s3_uri": S3_BASE,
        "min_part_size": 5_000_000,
        "recommended_part_size": 100_000_000,
    }
    fields.update(overrides)
    return Session(**fields)


@pytest.fixture
def b2(mock_env_clear) -> B2:
    """An already-authorized account handle talking to the default transport."""
    return B2(build_session(), RequestClient(HTTPConfig(api_base=API_BASE)))


@pytest.fixture
def make_b2(mock_env_clear) -> Callable[..., B2]:
    """Build an account handle whose requests go to ``handler``."""

    def factory(handler: Callable, **session_overrides: object) -> B2:
        config = HTTPConfig(api_base=API_BASE, transport=httpx.MockTransport(handler))
        return B2(build_session(**session_overrides), RequestClient(config))

    return factory
