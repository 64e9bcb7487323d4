"""Run an async operation under an attempts/delay policy."""

from __future__ import annotations

import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar, cast

import anyio
import anyio.lowlevel

T = TypeVar("T")

MAX_BACKOFF = 30.0

SleepFn = Callable[[float], Awaitable[None] | None]
AttemptsFn = Callable[[int, int, Exception], int]
DelayFn = Callable[[int, float, Exception], float]
OnRetryFn = Callable[[int, Exception], Awaitable[None] | None]
RetryIfFn = Callable[[int, Exception], bool]


def _keep_attempts(attempt: int, attempts: int, err: Exception) -> int:
    return attempts


def _keep_delay(attempt: int, delay: float, err: Exception) -> float:
    return delay


def _always(attempt: int, err: Exception) -> bool:
    return True


@dataclass(slots=True)
class RetryConfig:
    """Retry policy.

    ``attempts`` counts the first call; ``0`` retries until the operation
    succeeds, the policy gives up, or the caller cancels. Whatever
    ``dynamic_attempts`` and ``dynamic_delay`` return becomes the policy for
    the following attempts.
    """

    attempts: int = 1
    delay: float = 0.0
    dynamic_attempts: AttemptsFn = _keep_attempts
    dynamic_delay: DelayFn = _keep_delay
    on_retry: OnRetryFn | None = None
    retry_if: RetryIfFn = _always
    sleep: SleepFn = anyio.sleep


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await cast(Awaitable[None], result)


async def run(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    **options: Any,
) -> T:
    """Call ``operation`` until it succeeds or the policy stops retrying.

    Policy fields can be passed as a ``RetryConfig`` or as keyword arguments
    (which override the config's fields). The last error is re-raised once
    the policy gives up. Cancellation is checked before the first call and
    interrupts the wait between attempts; it is never retried.
    """
    cfg = RetryConfig(**options) if config is None else _with_options(config, options)
    await anyio.lowlevel.checkpoint_if_cancelled()

    attempts = cfg.attempts
    delay = cfg.delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as err:
            attempts = cfg.dynamic_attempts(attempt, attempts, err)
            if attempts != 0 and attempt >= attempts:
                raise
            if not cfg.retry_if(attempt, err):
                raise
            if cfg.on_retry is not None:
                await _maybe_await(cfg.on_retry(attempt, err))
            delay = cfg.dynamic_delay(attempt, delay, err)
        await _maybe_await(cfg.sleep(delay))


def _with_options(config: RetryConfig, options: dict[str, Any]) -> RetryConfig:
    return replace(config, **options) if options else config


def jitter(delay: float) -> float:
    """A random perturbation of about 1-3% of ``delay``."""
    f = delay / 50
    return f + f * (random.random() - 0.5)


def backoff(delay: float) -> float:
    """Double ``delay``, capped at 30 seconds, plus jitter."""
    if delay > MAX_BACKOFF:
        return MAX_BACKOFF + jitter(delay)
    return delay * 2 + jitter(delay * 2)


__all__ = ["MAX_BACKOFF", "RetryConfig", "SleepFn", "backoff", "jitter", "run"]
