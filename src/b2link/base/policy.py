"""Retry policies driven by the error classifier."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio

from .. import retry
from . import errors
from .errors import Action

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INITIAL_DELAY = 1.0


def _next_delay(delay: float, err: Exception, initial_delay: float) -> float:
    hinted = errors.backoff(err)
    if hinted > 0:
        return hinted
    return retry.backoff(delay) if delay > 0 else initial_delay


def classifier_options(
    *, initial_delay: float = DEFAULT_INITIAL_DELAY, sleep: retry.SleepFn = anyio.sleep
) -> retry.RetryConfig:
    """A retry policy that only retries errors classified as ``RETRY``.

    Attempts come from ``max_retries`` of the latest error. The wait is the
    service's Retry-After when given, otherwise exponential backoff starting
    at ``initial_delay``.
    """

    def attempts(attempt: int, current: int, err: Exception) -> int:
        return errors.max_retries(err) + 1

    def delay(attempt: int, current: float, err: Exception) -> float:
        return _next_delay(current, err, initial_delay)

    def should_retry(attempt: int, err: Exception) -> bool:
        return errors.action(err) is Action.RETRY

    return retry.RetryConfig(
        attempts=0,
        dynamic_attempts=attempts,
        dynamic_delay=delay,
        retry_if=should_retry,
        sleep=sleep,
    )


class _Recovery:
    def __init__(
        self,
        reload: Callable[[], Awaitable[Any]] | None,
        reauthenticate: Callable[[], Awaitable[Any]] | None,
        initial_delay: float,
    ) -> None:
        self._reload = reload
        self._reauthenticate = reauthenticate
        self._initial_delay = initial_delay
        self.retries = 0
        self.reuploads = 0
        self.reauthenticated = False

    def should_retry(self, attempt: int, err: Exception) -> bool:
        act = errors.action(err)
        if act is Action.RETRY:
            self.retries += 1
            return self.retries <= errors.max_retries(err)
        if act is Action.ATTEMPT_NEW_UPLOAD:
            if self._reload is None:
                return False
            self.reuploads += 1
            return self.reuploads <= errors.max_reuploads(err)
        if act is Action.REAUTHENTICATE:
            return self._reauthenticate is not None and not self.reauthenticated
        return False

    async def on_retry(self, attempt: int, err: Exception) -> None:
        act = errors.action(err)
        logger.debug("attempt %d failed (%s): %s", attempt, act.value, err)
        if act is Action.ATTEMPT_NEW_UPLOAD and self._reload is not None:
            await self._reload()
        elif act is Action.REAUTHENTICATE and self._reauthenticate is not None:
            self.reauthenticated = True
            await self._reauthenticate()

    def next_delay(self, attempt: int, delay: float, err: Exception) -> float:
        if errors.action(err) is not Action.RETRY:
            return 0.0
        return _next_delay(delay, err, self._initial_delay)


async def call_with_recovery(
    operation: Callable[[], Awaitable[T]],
    *,
    reload: Callable[[], Awaitable[Any]] | None = None,
    reauthenticate: Callable[[], Awaitable[Any]] | None = None,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    sleep: retry.SleepFn = anyio.sleep,
) -> T:
    """Run ``operation``, recovering as the classifier recommends.

    ``RETRY`` waits and tries again (up to ``max_retries``).
    ``ATTEMPT_NEW_UPLOAD`` calls ``reload`` (e.g. ``UploadURL.reload``) before
    trying again (up to ``max_reuploads``). ``REAUTHENTICATE`` calls
    ``reauthenticate`` once. Anything else, or an action with no callback,
    re-raises.
    """
    recovery = _Recovery(reload, reauthenticate, initial_delay)
    return await retry.run(
        operation,
        attempts=0,
        dynamic_delay=recovery.next_delay,
        retry_if=recovery.should_retry,
        on_retry=recovery.on_retry,
        sleep=sleep,
    )


__all__ = ["DEFAULT_INITIAL_DELAY", "call_with_recovery", "classifier_options"]
