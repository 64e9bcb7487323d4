"""Tests for classifier-driven retry policies."""

import pytest

from b2link import retry
from b2link.base.errors import ServiceError
from b2link.base.policy import call_with_recovery, classifier_options


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Script:
    """Raises the queued errors in order, then returns ``"ok"``."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def service_error(code: int, method: str, retry_after: int = 0, message: str = "") -> ServiceError:
    return ServiceError(message, method=method, code=code, retry=retry_after)


class TestClassifierOptions:
    @pytest.mark.asyncio
    async def test_retries_with_service_hint_then_backoff(self):
        op = Script(
            service_error(503, "b2_list_buckets", retry_after=7),
            service_error(503, "b2_list_buckets"),
            service_error(503, "b2_list_buckets"),
        )
        sleep = RecordingSleep()
        assert await retry.run(op, classifier_options(sleep=sleep)) == "ok"
        assert op.calls == 4
        assert sleep.delays[0] == 7.0
        assert 14.0 <= sleep.delays[1] <= 14.42
        assert sleep.delays[2] >= 28.0

    @pytest.mark.asyncio
    async def test_starts_backoff_at_initial_delay(self):
        op = Script(service_error(500, "b2_list_parts"))
        sleep = RecordingSleep()
        await retry.run(op, classifier_options(initial_delay=0.25, sleep=sleep))
        assert sleep.delays == [0.25]

    @pytest.mark.asyncio
    async def test_punt_is_not_retried(self):
        op = Script(service_error(404, "b2_get_file_info"))
        with pytest.raises(ServiceError):
            await retry.run(op, classifier_options(sleep=RecordingSleep()))
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_bounded_by_max_retries(self):
        op = Script(*[service_error(503, "b2_list_buckets") for _ in range(10)])
        with pytest.raises(ServiceError):
            await retry.run(op, classifier_options(sleep=RecordingSleep()))
        assert op.calls == 6


class TestCallWithRecovery:
    @pytest.mark.asyncio
    async def test_new_upload_reloads_lease(self):
        reloads = 0

        async def reload() -> None:
            nonlocal reloads
            reloads += 1

        op = Script(
            service_error(503, "b2_upload_part"),
            service_error(401, "b2_upload_part"),
        )
        sleep = RecordingSleep()
        assert await call_with_recovery(op, reload=reload, sleep=sleep) == "ok"
        assert reloads == 2
        assert sleep.delays == [0.0, 0.0]

    @pytest.mark.asyncio
    async def test_reuploads_are_bounded(self):
        reloads = 0

        async def reload() -> None:
            nonlocal reloads
            reloads += 1

        op = Script(*[service_error(500, "b2_upload_file") for _ in range(10)])
        with pytest.raises(ServiceError):
            await call_with_recovery(op, reload=reload, sleep=RecordingSleep())
        assert reloads == 5
        assert op.calls == 6

    @pytest.mark.asyncio
    async def test_new_upload_without_reload_raises(self):
        op = Script(service_error(500, "b2_upload_file"))
        with pytest.raises(ServiceError):
            await call_with_recovery(op, sleep=RecordingSleep())
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_reauthenticates_once(self):
        renewals = 0

        async def reauthenticate() -> None:
            nonlocal renewals
            renewals += 1

        op = Script(
            service_error(401, "b2_list_file_names"),
            service_error(401, "b2_list_file_names"),
        )
        with pytest.raises(ServiceError):
            await call_with_recovery(op, reauthenticate=reauthenticate, sleep=RecordingSleep())
        assert renewals == 1
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        op = Script(ServiceError("connection reset", retry=1))
        sleep = RecordingSleep()
        assert await call_with_recovery(op, sleep=sleep) == "ok"
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_local_errors_propagate(self):
        op = Script(ValueError("bad body"))
        with pytest.raises(ValueError):
            await call_with_recovery(op, sleep=RecordingSleep())
