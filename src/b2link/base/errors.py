from __future__ import annotations

import enum

UPLOAD_METHODS = frozenset({"b2_upload_file", "b2_upload_part"})
DOWNLOAD_METHODS = frozenset({"b2_download_file_by_id", "b2_download_file_by_name"})

# restic/restic#1207: the service sometimes rejects a lease it handed out
# because it believes another upload is using it.
CONTENDED_LEASE_MESSAGE = "more than one upload using auth token"


class B2Error(Exception):
    """Base class for every error raised by this package."""


class ServiceError(B2Error):
    """A failed B2 call.

    Built either from a non-2xx response or from a transport failure (in which
    case ``method`` is empty and ``retry`` is 1). Callers inspect it only
    through the module-level classifier functions.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str = "",
        code: int = 0,
        msg_code: str = "",
        retry: int = 0,
    ) -> None:
        self._message = message
        self._method = method
        self._code = code
        self._msg_code = msg_code
        self._retry = retry
        super().__init__(str(self))

    @property
    def message(self) -> str:
        return self._message

    @property
    def method(self) -> str:
        return self._method

    @property
    def code(self) -> int:
        return self._code

    @property
    def msg_code(self) -> str:
        return self._msg_code

    @property
    def retry(self) -> int:
        return self._retry

    def __str__(self) -> str:
        if not self._method:
            return f"b2 error: {self._message}"
        return f"{self._method}: {self._code}: {self._message}"

    def __repr__(self) -> str:
        return (
            f"ServiceError(method={self._method!r}, code={self._code}, "
            f"msg_code={self._msg_code!r}, retry={self._retry}, message={self._message!r})"
        )


class InvalidPartIndexError(B2Error):
    """A large file cannot be finished because its part numbers have a gap."""

    def __init__(self, index: int) -> None:
        super().__init__(f"b2_finish_large_file: invalid index {index}")
        self.index = index


class Action(enum.Enum):
    """The recommended course of action for a failed call."""

    # The account authorization token expired; call authorize_account again.
    REAUTHENTICATE = "reauthenticate"
    # The upload URL or its token expired; request a new one.
    ATTEMPT_NEW_UPLOAD = "attempt_new_upload"
    # Wait an appropriate amount of time, then repeat the call.
    RETRY = "retry"
    # Nothing useful can be done; surface the error.
    PUNT = "punt"


def action(err: BaseException | None) -> Action:
    """Classify ``err`` into the action a caller should take."""
    if not isinstance(err, ServiceError):
        return Action.PUNT
    if err.retry > 0:
        return Action.RETRY
    if 500 <= err.code < 600 and err.method in UPLOAD_METHODS:
        return Action.ATTEMPT_NEW_UPLOAD
    if err.code == 401:
        if err.method == "b2_authorize_account":
            return Action.PUNT
        if err.method in UPLOAD_METHODS:
            return Action.ATTEMPT_NEW_UPLOAD
        return Action.REAUTHENTICATE
    if err.code == 400:
        if err.method == "b2_upload_file" and err.message.startswith(CONTENDED_LEASE_MESSAGE):
            return Action.ATTEMPT_NEW_UPLOAD
        return Action.PUNT
    if err.code == 408:
        return Action.ATTEMPT_NEW_UPLOAD
    if err.code in (429, 500, 503):
        return Action.RETRY
    return Action.PUNT


def backoff(err: BaseException | None) -> float:
    """Seconds the service asked us to wait, or 0.

    A zero result with a RETRY action means the caller picks its own
    exponential backoff, starting at one second.
    """
    if not isinstance(err, ServiceError):
        return 0.0
    return float(err.retry)


def max_retries(err: BaseException | None) -> int:
    if not isinstance(err, ServiceError):
        return 0
    if err.method in UPLOAD_METHODS or err.method in DOWNLOAD_METHODS:
        return 20
    return 5


def max_reuploads(err: BaseException | None) -> int:
    # Local failures such as a chunk size mismatch are worth a fresh upload.
    if not isinstance(err, ServiceError):
        return 5
    if err.method in UPLOAD_METHODS:
        return 5
    return 0


def code(err: BaseException | None) -> tuple[int, str]:
    """Return the HTTP status and message of a service error."""
    if not isinstance(err, ServiceError):
        return 0, ""
    return err.code, err.message


def msg_code(err: BaseException | None) -> tuple[int, str, str]:
    """Return the HTTP status, service message code and message."""
    if not isinstance(err, ServiceError):
        return 0, "", ""
    return err.code, err.msg_code, err.message


__all__ = [
    "Action",
    "B2Error",
    "InvalidPartIndexError",
    "ServiceError",
    "action",
    "backoff",
    "code",
    "max_retries",
    "max_reuploads",
    "msg_code",
]
