"""Integration tests for the large file upload protocol."""

import hashlib
import json
import random

import anyio
import httpx
import pytest
import respx

from b2link.base import DeferredHash, InvalidPartIndexError, ServiceError, call_with_recovery
from b2link.base.files import LargeFile

API_BASE = "https://api.b2.test"
PART_URL = "https://pod-000.b2.test/b2api/v3/b2_upload_part/large-1/0001"


def _api(method: str) -> str:
    return f"{API_BASE}/b2api/v3/{method}"


def _sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class FakeLargeFileService:
    """Just enough of the service to run a large file upload end to end."""

    def __init__(self) -> None:
        self.parts: dict[int, bytes] = {}
        self.headers: dict[int, httpx.Headers] = {}
        self.finish_payload: dict | None = None
        self.leases = 0
        self.fail_next_part = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        if request.url.path.startswith("/b2api/v3/b2_upload_part"):
            return self._upload_part(request)
        if method == "b2_start_large_file":
            return httpx.Response(200, json={"fileId": "large-1", "fileName": "big.bin"})
        if method == "b2_get_upload_part_url":
            self.leases += 1
            return httpx.Response(
                200,
                json={
                    "uploadUrl": f"{PART_URL}?lease={self.leases}",
                    "authorizationToken": f"part-token-{self.leases}",
                },
            )
        if method == "b2_finish_large_file":
            self.finish_payload = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "fileId": "large-1",
                    "fileName": "big.bin",
                    "action": "upload",
                    "uploadTimestamp": 1700000000000,
                    "contentLength": sum(len(p) for p in self.parts.values()),
                },
            )
        if method == "b2_cancel_large_file":
            return httpx.Response(200, json={"fileId": "large-1"})
        return httpx.Response(404, json={"status": 404, "code": "not_found", "message": method})

    def _upload_part(self, request: httpx.Request) -> httpx.Response:
        if self.fail_next_part:
            self.fail_next_part = False
            return httpx.Response(
                503, json={"status": 503, "code": "service_unavailable", "message": "pod busy"}
            )
        index = int(request.headers["X-Bz-Part-Number"])
        self.parts[index] = request.content
        self.headers[index] = request.headers
        return httpx.Response(
            200,
            json={"fileId": "large-1", "partNumber": index, "contentLength": len(request.content)},
        )


@pytest.fixture
def service() -> FakeLargeFileService:
    return FakeLargeFileService()


class TestLargeFileUpload:
    @pytest.mark.asyncio
    async def test_parts_finish_in_index_order(self, make_b2, service):
        b2 = make_b2(service)
        bucket = b2.bucket("bucket-1", "photos")
        large = await bucket.start_large_file("big.bin", "application/octet-stream", {"k": "v"})
        chunks = {1: b"a" * 100, 2: b"b" * 250, 3: b"c" * 7}

        chunk = await large.get_upload_part_url()
        for index in (3, 1, 2):
            data = chunks[index]
            assert await chunk.upload_part(data, _sha1(data), len(data), index) == len(data)

        done = await large.finish_large_file()

        assert service.finish_payload == {
            "fileId": "large-1",
            "partSha1Array": [_sha1(chunks[1]), _sha1(chunks[2]), _sha1(chunks[3])],
        }
        assert done.size == 357
        assert done.id == "large-1"
        assert done.status == "upload"
        assert done.timestamp is not None and done.timestamp.year == 2023

        headers = service.headers[2]
        assert headers["authorization"] == "part-token-1"
        assert headers["content-length"] == "250"
        assert headers["x-bz-content-sha1"] == _sha1(chunks[2])

    @respx.mock
    @pytest.mark.asyncio
    async def test_gap_fails_before_any_network_call(self, b2):
        route = respx.post(_api("b2_finish_large_file")).mock(
            return_value=httpx.Response(200, json={})
        )
        large = b2.bucket("bucket-1", "photos").file("large-1", "big.bin").compile_parts(
            30, {1: "a" * 40, 2: "b" * 40, 4: "d" * 40}
        )

        with pytest.raises(InvalidPartIndexError) as exc_info:
            await large.finish_large_file()

        assert exc_info.value.index == 3
        assert "3" in str(exc_info.value)
        assert not route.called

    @pytest.mark.asyncio
    async def test_concurrent_parts_accumulate(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        rng = random.Random(7)
        payloads = {index: bytes([index % 256]) * rng.randint(1, 2000) for index in range(1, 51)}

        async def upload(index: int) -> None:
            chunk = await large.get_upload_part_url()
            await anyio.sleep(rng.random() / 100)
            data = payloads[index]
            await chunk.upload_part(data, _sha1(data), len(data), index)

        async with anyio.create_task_group() as tg:
            for index in payloads:
                tg.start_soon(upload, index)

        assert await large.total_size() == sum(len(p) for p in payloads.values())
        hashes = await large.part_hashes()
        assert hashes == {index: _sha1(data) for index, data in payloads.items()}

        done = await large.finish_large_file()
        assert done.size == sum(len(p) for p in payloads.values())
        assert service.finish_payload["partSha1Array"] == [_sha1(payloads[i]) for i in range(1, 51)]

    @pytest.mark.asyncio
    async def test_deferred_hash_is_read_from_the_stream(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        body = b"z" * 10_000
        digest = _sha1(body)

        async def stream():
            data = body + digest.encode()
            for offset in range(0, len(data), 999):
                yield data[offset : offset + 999]

        chunk = await large.get_upload_part_url()
        size = len(body) + 40
        await chunk.upload_part(stream(), DeferredHash.HEX_DIGITS_AT_END, size, 1)

        assert service.headers[1]["x-bz-content-sha1"] == "hex_digits_at_end"
        assert service.headers[1]["content-length"] == str(size)
        assert service.parts[1] == body + digest.encode()
        assert await large.part_hashes() == {1: digest}
        assert await large.total_size() == size

    @pytest.mark.asyncio
    async def test_same_index_twice_double_counts(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        chunk = await large.get_upload_part_url()
        await chunk.upload_part(b"first", _sha1(b"first"), 5, 1)
        await chunk.upload_part(b"again", _sha1(b"again"), 5, 1)

        assert await large.total_size() == 10
        assert await large.part_hashes() == {1: _sha1(b"again")}

    @pytest.mark.asyncio
    async def test_failed_part_reloads_lease(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        chunk = await large.get_upload_part_url()
        first_lease = chunk.lease
        service.fail_next_part = True

        async def no_wait(delay: float) -> None:
            return None

        await call_with_recovery(
            lambda: chunk.upload_part(b"data", _sha1(b"data"), 4, 1),
            reload=chunk.reload,
            sleep=no_wait,
        )

        assert chunk.lease != first_lease
        assert chunk.lease.token == "part-token-2"
        assert service.headers[1]["authorization"] == "part-token-2"
        assert await large.total_size() == 4

    @pytest.mark.asyncio
    async def test_failed_part_is_not_recorded(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        chunk = await large.get_upload_part_url()
        service.fail_next_part = True

        with pytest.raises(ServiceError):
            await chunk.upload_part(b"data", _sha1(b"data"), 4, 1)

        assert await large.total_size() == 0
        assert await large.part_hashes() == {}

    @pytest.mark.asyncio
    async def test_finish_holds_part_state_until_done(self, make_b2, service):
        finish_started = anyio.Event()
        part_sent = anyio.Event()
        release = anyio.Event()
        order: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/b2_finish_large_file"):
                order.append("finish-start")
                finish_started.set()
                await release.wait()
            elif request.url.path.startswith("/b2api/v3/b2_upload_part/"):
                if request.headers["X-Bz-Part-Number"] == "2":
                    order.append("part-sent")
                    part_sent.set()
            return service(request)

        b2 = make_b2(handler)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        chunk = await large.get_upload_part_url()
        await chunk.upload_part(b"abc", _sha1(b"abc"), 3, 1)
        results = {}

        async def finish() -> None:
            results["done"] = await large.finish_large_file()
            order.append("finish-end")

        async def late_part() -> None:
            await chunk.upload_part(b"de", _sha1(b"de"), 2, 2)

        async with anyio.create_task_group() as tg:
            tg.start_soon(finish)
            await finish_started.wait()
            tg.start_soon(late_part)
            await part_sent.wait()
            order.append("release")
            release.set()

        assert order == ["finish-start", "part-sent", "release", "finish-end"]
        assert results["done"].size == 3
        assert service.finish_payload["partSha1Array"] == [_sha1(b"abc")]
        assert await large.total_size() == 5

    @pytest.mark.asyncio
    async def test_cancel(self, make_b2, service):
        b2 = make_b2(service)
        large = await b2.bucket("bucket-1", "photos").start_large_file("big.bin", "b2/x-auto")
        await large.cancel_large_file()


class TestResume:
    def test_compile_parts_copies_caller_state(self, b2):
        seen = {1: "a" * 40, 2: "b" * 40}
        large = b2.bucket("bucket-1", "photos").file("large-1", "big.bin").compile_parts(20, seen)
        seen[3] = "c" * 40
        assert isinstance(large, LargeFile)
        assert large.id == "large-1"
        assert 3 not in large._hashes

    def test_compile_parts_rejects_bad_index(self, b2):
        handle = b2.bucket("bucket-1", "photos").file("large-1", "big.bin")
        with pytest.raises(InvalidPartIndexError):
            handle.compile_parts(10, {0: "a" * 40})

    @pytest.mark.asyncio
    async def test_recover_from_paged_part_listing(self, make_b2):
        requests: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            requests.append(payload)
            if payload["startPartNumber"] == 1:
                return httpx.Response(
                    200,
                    json={
                        "parts": [
                            {"partNumber": 1, "contentSha1": "1" * 40, "contentLength": 100},
                            {"partNumber": 2, "contentSha1": "2" * 40, "contentLength": 100},
                        ],
                        "nextPartNumber": 3,
                    },
                )
            return httpx.Response(
                200,
                json={
                    "parts": [{"partNumber": 3, "contentSha1": "3" * 40, "contentLength": 50}],
                    "nextPartNumber": None,
                },
            )

        b2 = make_b2(handler)
        handle = b2.bucket("bucket-1", "photos").file("large-1", "big.bin")
        large = await handle.recover_large_file(page_size=2)

        assert requests == [
            {"fileId": "large-1", "startPartNumber": 1, "maxPartCount": 2},
            {"fileId": "large-1", "startPartNumber": 3, "maxPartCount": 2},
        ]
        assert await large.total_size() == 250
        assert await large.part_hashes() == {1: "1" * 40, 2: "2" * 40, 3: "3" * 40}

    @pytest.mark.asyncio
    async def test_list_unfinished_large_files(self, make_b2):
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {
                "bucketId": "bucket-1",
                "startFileId": "f-0",
                "maxFileCount": 10,
            }
            return httpx.Response(
                200,
                json={
                    "files": [{"fileId": "f-1", "fileName": "a.bin", "action": "start"}],
                    "nextFileId": "f-2",
                },
            )

        b2 = make_b2(handler)
        files, next_id = await b2.bucket("bucket-1", "photos").list_unfinished_large_files(10, "f-0")
        assert [(f.id, f.name, f.status) for f in files] == [("f-1", "a.bin", "start")]
        assert next_id == "f-2"
        assert files[0].as_large_file().id == "f-1"
