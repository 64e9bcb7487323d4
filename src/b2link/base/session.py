from __future__ import annotations

import base64
from dataclasses import dataclass, field

import anyio

from .._http import HTTPConfig
from .bucket import Bucket
from .models import (
    V3_API,
    AuthorizeAccountResponse,
    ListBucketsRequest,
    ListBucketsResponse,
)
from .request import RequestClient


@dataclass(frozen=True, slots=True)
class Session:
    """An immutable snapshot of an account authorization."""

    account_id: str
    auth_token: str = field(repr=False)
    api_uri: str
    download_uri: str
    s3_uri: str
    min_part_size: int
    recommended_part_size: int = 0
    # Set when the application key is restricted to one bucket / name prefix.
    bucket_id: str | None = None
    prefix: str | None = None


@dataclass(frozen=True, slots=True)
class _AccountState:
    session: Session
    client: RequestClient


class B2:
    """An authorized account.

    Every handle derived from it (buckets, files, large files) reads the
    current session on each call, so ``update`` re-authorizes all of them at
    once.
    """

    def __init__(self, session: Session, client: RequestClient) -> None:
        self._state = _AccountState(session, client)

    @property
    def session(self) -> Session:
        return self._state.session

    @property
    def client(self) -> RequestClient:
        return self._state.client

    def api_url(self, method: str) -> str:
        return f"{self._state.session.api_uri}{V3_API}{method}"

    def update(self, other: B2) -> RequestClient | None:
        """Replace this account's session with ``other``'s in one step.

        Returns the request client that was replaced when ``other`` carries a
        different one, or ``None`` when the client is shared. The caller owns
        the returned client and should ``aclose`` it once no request is still
        using it.
        """
        previous = self._state.client
        self._state = other._state
        if previous is other._state.client:
            return None
        return previous

    async def reauthorize(self, account_id: str, application_key: str) -> None:
        fresh = await authorize_account(account_id, application_key, client=self.client)
        self.update(fresh)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> B2:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def bucket(self, bucket_id: str, name: str) -> Bucket:
        """A handle for a known bucket, without a round trip."""
        return Bucket(name=name, id=bucket_id, b2=self)

    async def list_buckets(
        self, name: str | None = None, bucket_types: list[str] | None = None
    ) -> list[Bucket]:
        """List buckets; with ``name``, only that bucket (if it exists)."""
        session = self.session
        b2req = ListBucketsRequest(
            account_id=session.account_id,
            bucket_id=session.bucket_id,
            bucket_name=name,
            bucket_types=bucket_types,
        )
        resp = await self.client.make_request(
            "b2_list_buckets",
            "POST",
            self.api_url("b2_list_buckets"),
            b2req=b2req,
            response_model=ListBucketsResponse,
            headers={"Authorization": session.auth_token},
        )
        return [
            Bucket(
                name=bucket.bucket_name,
                id=bucket.bucket_id,
                type=bucket.bucket_type,
                info=dict(bucket.bucket_info),
                revision=bucket.revision,
                b2=self,
            )
            for bucket in resp.buckets
        ]


async def authorize_account(
    account_id: str,
    application_key: str,
    *,
    config: HTTPConfig | None = None,
    client: RequestClient | None = None,
) -> B2:
    """Exchange account credentials for an authorized ``B2`` handle.

    Args:
        account_id: Account or application key id.
        application_key: The secret key.
        config: Session options (transport, user agent, API base, test
            modes). Ignored when ``client`` is given.
        client: Reuse an existing request client, e.g. when re-authorizing.
    """
    owns_client = client is None
    request_client = client or RequestClient(config)
    credentials = base64.b64encode(f"{account_id}:{application_key}".encode()).decode("ascii")
    uri = f"{request_client.config.get_api_base()}{V3_API}b2_authorize_account"
    try:
        resp = await request_client.make_request(
            "b2_authorize_account",
            "GET",
            uri,
            response_model=AuthorizeAccountResponse,
            headers={"Authorization": f"Basic {credentials}"},
        )
    except BaseException:
        if owns_client:
            with anyio.CancelScope(shield=True):
                await request_client.aclose()
        raise
    storage = resp.api_info.storage_api
    session = Session(
        account_id=resp.account_id,
        auth_token=resp.authorization_token,
        api_uri=storage.api_url,
        download_uri=storage.download_url,
        s3_uri=storage.s3_api_url,
        min_part_size=storage.absolute_minimum_part_size,
        recommended_part_size=storage.recommended_part_size,
        bucket_id=storage.bucket_id,
        prefix=storage.name_prefix,
    )
    return B2(session, request_client)


__all__ = ["B2", "Session", "authorize_account"]
