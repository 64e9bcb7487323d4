from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx

from .._http import StreamBody
from .errors import B2Error
from .escape import escape, unescape
from .files import File, LargeFile, file_from_response
from .hashing import Body, ContentHash, DeferredHash, KeepFinalBytes, stream_content
from .models import (
    FileResponse,
    GetDownloadAuthorizationRequest,
    GetDownloadAuthorizationResponse,
    HideFileRequest,
    ListFileNamesRequest,
    ListFileNamesResponse,
    ListFileVersionsRequest,
    ListFileVersionsResponse,
    ListUnfinishedLargeFilesRequest,
    ListUnfinishedLargeFilesResponse,
    StartLargeFileRequest,
    UploadURLResponse,
)
from .types import Lease

if TYPE_CHECKING:
    from .session import B2

_INFO_PREFIX = "x-bz-info-"
_LARGE_FILE_SHA1 = "large_file_sha1"


def mk_range(offset: int, size: int) -> str:
    """Build a Range header value; empty means the whole file."""
    if offset == 0 and size == 0:
        return ""
    if size == 0:
        return f"bytes={offset}-"
    return f"bytes={offset}-{offset + size - 1}"


class Bucket:
    def __init__(
        self,
        *,
        name: str,
        id: str,
        b2: B2,
        type: str = "",
        info: Mapping[str, str] | None = None,
        revision: int = 0,
    ) -> None:
        self.name = name
        self.id = id
        self.type = type
        self.info = dict(info or {})
        self.revision = revision
        self._b2 = b2

    def __repr__(self) -> str:
        return f"Bucket(name={self.name!r}, id={self.id!r})"

    def base_url(self) -> str:
        """The download base URL for this account."""
        return self._b2.session.download_uri

    def s3_url(self) -> str:
        return self._b2.session.s3_uri

    def file(self, id: str, name: str) -> File:
        """A handle for a known file id, without a round trip."""
        return File(name=name, id=id, b2=self._b2)

    async def get_upload_url(self) -> UploadURL:
        session = self._b2.session
        resp = await self._b2.client.make_request(
            "b2_get_upload_url",
            "POST",
            self._b2.api_url("b2_get_upload_url"),
            b2req={"bucketId": self.id},
            response_model=UploadURLResponse,
            headers={"Authorization": session.auth_token},
        )
        return UploadURL(Lease(uri=resp.upload_url, token=resp.authorization_token), self)

    async def start_large_file(
        self, name: str, content_type: str, info: Mapping[str, str] | None = None
    ) -> LargeFile:
        session = self._b2.session
        b2req = StartLargeFileRequest(
            bucket_id=self.id,
            file_name=name,
            content_type=content_type,
            file_info=dict(info) if info else None,
        )
        resp = await self._b2.client.make_request(
            "b2_start_large_file",
            "POST",
            self._b2.api_url("b2_start_large_file"),
            b2req=b2req,
            response_model=FileResponse,
            headers={"Authorization": session.auth_token},
        )
        return LargeFile(resp.file_id, self._b2)

    async def list_unfinished_large_files(
        self, count: int, continuation: str | None = None
    ) -> tuple[list[File], str | None]:
        """One page of unfinished large files and the id to continue from."""
        session = self._b2.session
        b2req = ListUnfinishedLargeFilesRequest(
            bucket_id=self.id, start_file_id=continuation or None, max_file_count=count
        )
        resp = await self._b2.client.make_request(
            "b2_list_unfinished_large_files",
            "POST",
            self._b2.api_url("b2_list_unfinished_large_files"),
            b2req=b2req,
            response_model=ListUnfinishedLargeFilesResponse,
            headers={"Authorization": session.auth_token},
        )
        files = [file_from_response(item, self._b2) for item in resp.files]
        return files, resp.next_file_id

    async def list_file_names(
        self,
        count: int,
        continuation: str | None = None,
        prefix: str | None = None,
        delimiter: str | None = None,
    ) -> tuple[list[File], str | None]:
        """One page of file names and the name to continue from.

        ``prefix`` defaults to the key's name restriction, if any.
        """
        session = self._b2.session
        b2req = ListFileNamesRequest(
            bucket_id=self.id,
            max_file_count=count,
            start_file_name=continuation or None,
            prefix=prefix or session.prefix,
            delimiter=delimiter or None,
        )
        resp = await self._b2.client.make_request(
            "b2_list_file_names",
            "POST",
            self._b2.api_url("b2_list_file_names"),
            b2req=b2req,
            response_model=ListFileNamesResponse,
            headers={"Authorization": session.auth_token},
        )
        files = [file_from_response(item, self._b2) for item in resp.files]
        return files, resp.next_file_name

    async def list_file_versions(
        self,
        count: int,
        start_name: str | None = None,
        start_id: str | None = None,
        prefix: str | None = None,
        delimiter: str | None = None,
    ) -> tuple[list[File], str | None, str | None]:
        """One page of file versions and the (name, id) pair to continue from."""
        session = self._b2.session
        b2req = ListFileVersionsRequest(
            bucket_id=self.id,
            max_file_count=count,
            start_file_name=start_name or None,
            start_file_id=start_id or None,
            prefix=prefix or session.prefix,
            delimiter=delimiter or None,
        )
        resp = await self._b2.client.make_request(
            "b2_list_file_versions",
            "POST",
            self._b2.api_url("b2_list_file_versions"),
            b2req=b2req,
            response_model=ListFileVersionsResponse,
            headers={"Authorization": session.auth_token},
        )
        files = [file_from_response(item, self._b2) for item in resp.files]
        return files, resp.next_file_name, resp.next_file_id

    async def hide_file(self, name: str) -> File:
        session = self._b2.session
        resp = await self._b2.client.make_request(
            "b2_hide_file",
            "POST",
            self._b2.api_url("b2_hide_file"),
            b2req=HideFileRequest(bucket_id=self.id, file_name=name),
            response_model=FileResponse,
            headers={"Authorization": session.auth_token},
        )
        return file_from_response(resp, self._b2)

    async def get_download_authorization(
        self,
        prefix: str,
        valid: timedelta | float,
        content_disposition: str | None = None,
    ) -> str:
        """A token allowing downloads of names under ``prefix`` for ``valid``."""
        if isinstance(valid, timedelta):
            valid = valid.total_seconds()
        session = self._b2.session
        b2req = GetDownloadAuthorizationRequest(
            bucket_id=self.id,
            file_name_prefix=prefix,
            valid_duration_in_seconds=int(valid),
            b2_content_disposition=content_disposition or None,
        )
        resp = await self._b2.client.make_request(
            "b2_get_download_authorization",
            "POST",
            self._b2.api_url("b2_get_download_authorization"),
            b2req=b2req,
            response_model=GetDownloadAuthorizationResponse,
            headers={"Authorization": session.auth_token},
        )
        return resp.authorization_token

    async def download_file_by_name(
        self, name: str, offset: int = 0, size: int = 0, header: bool = False
    ) -> FileReader:
        """Open ``name`` for reading.

        ``offset`` and ``size`` select a byte range (``size=0`` reads to the
        end). With ``header=True`` only the metadata is fetched.
        """
        session = self._b2.session
        uri = f"{session.download_uri}/file/{self.name}/{escape(name)}"
        headers = {"Authorization": session.auth_token}
        byte_range = mk_range(offset, size)
        if byte_range:
            headers["Range"] = byte_range
        verb = "HEAD" if header else "GET"
        response = await self._b2.client.open_stream(
            "b2_download_file_by_name", verb, uri, headers=headers
        )
        try:
            return FileReader.from_response(response)
        except BaseException:
            await response.aclose()
            raise


class UploadURL:
    """An upload URL leased for a bucket.

    Use one per concurrent uploader. After the service rejects it, call
    ``reload`` before uploading again.
    """

    def __init__(self, lease: Lease, bucket: Bucket) -> None:
        self._lease = lease
        self._bucket = bucket

    @property
    def lease(self) -> Lease:
        return self._lease

    async def reload(self) -> None:
        fresh = await self._bucket.get_upload_url()
        self._lease = fresh.lease

    async def upload_file(
        self,
        body: Body,
        size: int,
        name: str,
        content_type: str,
        sha1: ContentHash,
        info: Mapping[str, str] | None = None,
    ) -> File:
        """Upload ``size`` bytes from ``body`` as a new version of ``name``.

        File info keys and values, and the file name, are sent escaped.
        """
        lease = self._lease
        headers = {
            "Authorization": lease.token,
            "X-Bz-File-Name": name,
            "Content-Type": content_type,
        }
        for key, value in (info or {}).items():
            headers[f"X-Bz-Info-{escape(key)}"] = value
        if isinstance(sha1, DeferredHash):
            headers["X-Bz-Content-Sha1"] = sha1.value
            content = StreamBody(KeepFinalBytes(body, size), size)
        else:
            headers["X-Bz-Content-Sha1"] = sha1
            content = StreamBody(stream_content(body), size)

        b2 = self._bucket._b2
        resp = await b2.client.make_request(
            "b2_upload_file",
            "POST",
            lease.uri,
            response_model=FileResponse,
            headers=headers,
            body=content,
        )
        uploaded = file_from_response(resp, b2)
        uploaded.size = size
        return uploaded


class FileReader:
    """An open download.

    The body is streamed from the service; close the reader (or use it as an
    async context manager) when done.
    """

    def __init__(
        self,
        response: httpx.Response,
        *,
        content_length: int,
        content_type: str,
        sha1: str,
        id: str,
        info: dict[str, str],
    ) -> None:
        self._response = response
        self.content_length = content_length
        self.content_type = content_type
        self.sha1 = sha1
        self.id = id
        self.info = info

    @classmethod
    def from_response(cls, response: httpx.Response) -> FileReader:
        headers = response.headers
        try:
            content_length = int(headers["Content-Length"])
        except (KeyError, ValueError) as exc:
            raise B2Error(
                f"b2_download_file_by_name: bad content length {headers.get('Content-Length')!r}"
            ) from exc

        # Raw header names keep the case the uploader chose for the info key.
        info: dict[str, str] = {}
        for raw_name, raw_value in headers.raw:
            name = raw_name.decode("latin-1")
            if not name.lower().startswith(_INFO_PREFIX):
                continue
            info[unescape(name[len(_INFO_PREFIX) :])] = unescape(raw_value.decode("latin-1"))

        sha1 = headers.get("X-Bz-Content-Sha1", "")
        if sha1 == "none":
            for key, value in info.items():
                if key.lower() == _LARGE_FILE_SHA1:
                    sha1 = value
                    break

        return cls(
            response,
            content_length=content_length,
            content_type=headers.get("Content-Type", ""),
            sha1=sha1,
            id=headers.get("X-Bz-File-Id", ""),
            info=info,
        )

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def aiter_bytes(self, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes(chunk_size):
            yield chunk

    async def read(self) -> bytes:
        chunks = [chunk async for chunk in self.aiter_bytes()]
        return b"".join(chunks)

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> FileReader:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


__all__ = ["Bucket", "FileReader", "UploadURL", "mk_range"]
