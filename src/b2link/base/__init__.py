from .errors import (
    Action,
    B2Error,
    InvalidPartIndexError,
    ServiceError,
    action,
    backoff,
    code,
    max_retries,
    max_reuploads,
    msg_code,
)
from .escape import escape, unescape
from .hashing import ContentHash, DeferredHash, KeepFinalBytes
from .types import FileInfo, FilePart, Lease
from .request import RequestClient
from .session import B2, Session, authorize_account
from .bucket import Bucket, FileReader, UploadURL
from .files import File, FileChunk, LargeFile
from .policy import call_with_recovery, classifier_options

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
    "escape",
    "unescape",
    "ContentHash",
    "DeferredHash",
    "KeepFinalBytes",
    "FileInfo",
    "FilePart",
    "Lease",
    "RequestClient",
    "B2",
    "Session",
    "authorize_account",
    "Bucket",
    "FileReader",
    "UploadURL",
    "File",
    "FileChunk",
    "LargeFile",
    "call_with_recovery",
    "classifier_options",
]
