"""Async client engine for the Backblaze B2 native API."""

from ._http import HTTPConfig
from .base import (
    B2,
    Action,
    B2Error,
    Bucket,
    DeferredHash,
    File,
    FileChunk,
    FileReader,
    InvalidPartIndexError,
    LargeFile,
    ServiceError,
    UploadURL,
    authorize_account,
)

__version__ = "0.1.0"

__all__ = [
    "HTTPConfig",
    "B2",
    "Action",
    "B2Error",
    "Bucket",
    "DeferredHash",
    "File",
    "FileChunk",
    "FileReader",
    "InvalidPartIndexError",
    "LargeFile",
    "ServiceError",
    "UploadURL",
    "authorize_account",
]
