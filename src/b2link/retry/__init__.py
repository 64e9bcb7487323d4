from .core import MAX_BACKOFF, RetryConfig, SleepFn, backoff, jitter, run

__all__ = ["MAX_BACKOFF", "RetryConfig", "SleepFn", "backoff", "jitter", "run"]
