from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING

import anyio

from .._http import StreamBody
from .errors import B2Error, InvalidPartIndexError
from .hashing import Body, ContentHash, DeferredHash, KeepFinalBytes, stream_content
from .models import (
    FileResponse,
    FinishLargeFileRequest,
    ListPartsRequest,
    ListPartsResponse,
    UploadURLResponse,
)
from .types import FileInfo, FilePart, Lease, millitime

if TYPE_CHECKING:
    from .session import B2

DEFAULT_LIST_PARTS_COUNT = 1000


class File:
    """A stored (or in-progress) file, identified by its id."""

    def __init__(
        self,
        *,
        name: str,
        id: str,
        b2: B2,
        size: int = 0,
        status: str = "upload",
        timestamp: datetime | None = None,
        info: FileInfo | None = None,
    ) -> None:
        self.name = name
        self.id = id
        self.size = size
        self.status = status
        self.timestamp = timestamp
        self.info = info
        self._b2 = b2

    def __repr__(self) -> str:
        return f"File(name={self.name!r}, id={self.id!r}, size={self.size}, status={self.status!r})"

    async def get_file_info(self) -> FileInfo:
        session = self._b2.session
        resp = await self._b2.client.make_request(
            "b2_get_file_info",
            "POST",
            self._b2.api_url("b2_get_file_info"),
            b2req={"fileId": self.id},
            response_model=FileResponse,
            headers={"Authorization": session.auth_token},
        )
        self.info = file_info_from_response(resp)
        self.name = resp.file_name
        self.status = resp.action
        self.timestamp = millitime(resp.upload_timestamp)
        return self.info

    async def delete_file_version(self) -> None:
        session = self._b2.session
        await self._b2.client.make_request(
            "b2_delete_file_version",
            "POST",
            self._b2.api_url("b2_delete_file_version"),
            b2req={"fileName": self.name, "fileId": self.id},
            headers={"Authorization": session.auth_token},
        )

    async def list_parts(
        self, next: int = 1, count: int = DEFAULT_LIST_PARTS_COUNT
    ) -> tuple[list[FilePart], int | None]:
        """List uploaded parts starting at part number ``next``.

        Returns the parts and the part number to continue from, or ``None``
        once the listing is exhausted.
        """
        session = self._b2.session
        resp = await self._b2.client.make_request(
            "b2_list_parts",
            "POST",
            self._b2.api_url("b2_list_parts"),
            b2req=ListPartsRequest(file_id=self.id, start_part_number=next, max_part_count=count),
            response_model=ListPartsResponse,
            headers={"Authorization": session.auth_token},
        )
        parts = [
            FilePart(number=part.part_number, sha1=part.content_sha1, size=part.content_length)
            for part in resp.parts
        ]
        return parts, resp.next_part_number

    def compile_parts(self, size: int, seen: Mapping[int, str]) -> LargeFile:
        """Resume an upload from caller-held state.

        ``seen`` maps completed part numbers to their SHA1 and ``size`` is the
        total size of those parts. Both are trusted as given; use
        ``recover_large_file`` to rebuild them from the service instead.
        """
        if size < 0:
            raise B2Error(f"invalid large file size {size}")
        for index in seen:
            if index < 1:
                raise InvalidPartIndexError(index)
        return LargeFile(self.id, self._b2, size=size, hashes=seen)

    async def recover_large_file(self, page_size: int = DEFAULT_LIST_PARTS_COUNT) -> LargeFile:
        """Resume an upload from the service's own part listing."""
        seen: dict[int, str] = {}
        size = 0
        next_part: int | None = 1
        while next_part is not None:
            parts, next_part = await self.list_parts(next_part, page_size)
            for part in parts:
                seen[part.number] = part.sha1
                size += part.size
        return LargeFile(self.id, self._b2, size=size, hashes=seen)

    def as_large_file(self) -> LargeFile:
        return LargeFile(self.id, self._b2)


class LargeFile:
    """An unfinished large file upload.

    Part uploads may run concurrently, each through its own ``FileChunk``.
    The running size and the part hashes are only touched under the
    instance lock.
    """

    def __init__(
        self,
        file_id: str,
        b2: B2,
        *,
        size: int = 0,
        hashes: Mapping[int, str] | None = None,
    ) -> None:
        self.id = file_id
        self._b2 = b2
        self._lock = anyio.Lock()
        self._size = size
        self._hashes: dict[int, str] = dict(hashes or {})

    def __repr__(self) -> str:
        return f"LargeFile(id={self.id!r})"

    async def total_size(self) -> int:
        async with self._lock:
            return self._size

    async def part_hashes(self) -> dict[int, str]:
        async with self._lock:
            return dict(self._hashes)

    async def _record_part(self, index: int, sha1: str, size: int) -> None:
        async with self._lock:
            self._hashes[index] = sha1
            self._size += size

    def _ordered_hashes(self) -> list[str]:
        # Callers hold self._lock.
        for index in self._hashes:
            if index < 1:
                raise InvalidPartIndexError(index)
        ordered: list[str] = []
        for number in range(1, max(self._hashes, default=0) + 1):
            if number not in self._hashes:
                raise InvalidPartIndexError(number)
            ordered.append(self._hashes[number])
        return ordered

    async def get_upload_part_url(self) -> FileChunk:
        session = self._b2.session
        resp = await self._b2.client.make_request(
            "b2_get_upload_part_url",
            "POST",
            self._b2.api_url("b2_get_upload_part_url"),
            b2req={"fileId": self.id},
            response_model=UploadURLResponse,
            headers={"Authorization": session.auth_token},
        )
        return FileChunk(Lease(uri=resp.upload_url, token=resp.authorization_token), self)

    async def cancel_large_file(self) -> None:
        session = self._b2.session
        await self._b2.client.make_request(
            "b2_cancel_large_file",
            "POST",
            self._b2.api_url("b2_cancel_large_file"),
            b2req={"fileId": self.id},
            headers={"Authorization": session.auth_token},
        )

    async def finish_large_file(self) -> File:
        """Assemble the uploaded parts into the final file.

        Raises:
            InvalidPartIndexError: If the part numbers are not exactly
                ``1..N``; nothing is sent in that case.
            ServiceError: If the service rejects the call.
        """
        async with self._lock:
            b2req = FinishLargeFileRequest(file_id=self.id, part_sha1_array=self._ordered_hashes())
            session = self._b2.session
            resp = await self._b2.client.make_request(
                "b2_finish_large_file",
                "POST",
                self._b2.api_url("b2_finish_large_file"),
                b2req=b2req,
                response_model=FileResponse,
                headers={"Authorization": session.auth_token},
            )
            return File(
                name=resp.file_name,
                id=resp.file_id,
                b2=self._b2,
                size=self._size,
                status=resp.action,
                timestamp=millitime(resp.upload_timestamp),
            )


class FileChunk:
    """An upload part URL leased for one large file.

    Use one per concurrent uploader. After the service rejects it, call
    ``reload`` before uploading again.
    """

    def __init__(self, lease: Lease, large_file: LargeFile) -> None:
        self._lease = lease
        self._file = large_file

    @property
    def lease(self) -> Lease:
        return self._lease

    async def reload(self) -> None:
        fresh = await self._file.get_upload_part_url()
        self._lease = fresh.lease

    async def upload_part(self, body: Body, sha1: ContentHash, size: int, index: int) -> int:
        """Upload part number ``index`` (1-based) and record its hash.

        ``body`` must produce exactly ``size`` bytes. With
        ``DeferredHash.HEX_DIGITS_AT_END`` the body ends with the 40 hex digits
        of its SHA1 (counted in ``size``), which are recorded as the part hash.
        Uploading the same index twice overwrites its hash but counts its size
        again.
        """
        lease = self._lease
        headers = {
            "Authorization": lease.token,
            "X-Bz-Part-Number": str(index),
        }
        keeper: KeepFinalBytes | None = None
        if isinstance(sha1, DeferredHash):
            keeper = KeepFinalBytes(body, size)
            headers["X-Bz-Content-Sha1"] = sha1.value
            content = StreamBody(keeper, size)
        else:
            headers["X-Bz-Content-Sha1"] = sha1
            content = StreamBody(stream_content(body), size)

        client = self._file._b2.client
        await client.make_request("b2_upload_part", "POST", lease.uri, headers=headers, body=content)

        resolved = keeper.hex_digest if keeper is not None else sha1
        await self._file._record_part(index, str(resolved), size)
        return size


def file_info_from_response(resp: FileResponse) -> FileInfo:
    return FileInfo(
        name=resp.file_name,
        sha1=resp.content_sha1,
        md5=resp.content_md5,
        size=resp.content_length,
        content_type=resp.content_type,
        info=dict(resp.file_info),
        status=resp.action,
        timestamp=millitime(resp.upload_timestamp),
    )


def file_from_response(resp: FileResponse, b2: B2) -> File:
    return File(
        name=resp.file_name,
        id=resp.file_id,
        b2=b2,
        size=resp.content_length,
        status=resp.action,
        timestamp=millitime(resp.upload_timestamp),
        info=file_info_from_response(resp),
    )


__all__ = ["File", "FileChunk", "LargeFile", "file_from_response", "file_info_from_response"]
