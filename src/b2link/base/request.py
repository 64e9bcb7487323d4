from __future__ import annotations

import logging
import re
import ssl
import threading
from collections.abc import Mapping
from typing import Any, TypeVar, overload

import httpx
from pydantic import BaseModel, ValidationError

from .._http import AsyncTransport, HTTPConfig, JSONBody, RequestBody, StreamBody
from .errors import B2Error, ServiceError
from .escape import escape_header
from .models import ErrorMessage

logger = logging.getLogger(__name__)

METHOD_HEADER = "X-Blazer-Method"
REQUEST_ID_HEADER = "X-Blazer-Request-ID"

_UNLOGGED_HEADERS = frozenset({"authorization", METHOD_HEADER.lower(), REQUEST_ID_HEADER.lower()})
_AUTH_TOKEN_PATTERN = re.compile(rb'"authorizationToken"\s*:\s*"[^"]*"')
_REDACTED_AUTH_TOKEN = b'"authorizationToken": "[redacted]"'

ModelT = TypeVar("ModelT", bound=BaseModel)


class _RequestCounter:
    """Process-wide source of request correlation ids."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


_request_ids = _RequestCounter()


def next_request_id() -> int:
    return _request_ids.next()


def redact(data: bytes) -> str:
    return _AUTH_TOKEN_PATTERN.sub(_REDACTED_AUTH_TOKEN, data).decode("utf-8", errors="replace")


def _format_headers(headers: Mapping[str, str] | httpx.Headers, sep: str) -> str:
    return sep.join(
        f"{key}: {value}" for key, value in headers.items() if key.lower() not in _UNLOGGED_HEADERS
    )


def log_request(
    method: str, verb: str, uri: str, headers: Mapping[str, str], args: bytes | None
) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    hstr = _format_headers(headers, ";")
    if args is not None:
        logger.debug(">> %s %s: %s headers: {%s} args: (%s)", method, verb, uri, hstr, redact(args))
        return
    logger.debug(">> %s %s: %s {%s} (no args)", method, verb, uri, hstr)


def log_response(response: httpx.Response, reply: bytes | None) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    hstr = _format_headers(response.headers, "; ")
    method = response.request.headers.get(METHOD_HEADER, "")
    request_id = response.request.headers.get(REQUEST_ID_HEADER, "")
    status = f"{response.status_code} {response.reason_phrase}"
    if reply is not None:
        logger.debug("<< %s (%s) %s {%s} (%s)", method, request_id, status, hstr, redact(reply))
        return
    logger.debug("<< %s (%s) %s {%s} (no reply)", method, request_id, status, hstr)


def is_certificate_error(exc: BaseException) -> bool:
    """Whether ``exc`` was caused by a failed TLS certificate verification."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLCertVerificationError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def wrap_transport_error(method: str, uri: str, exc: httpx.TransportError) -> BaseException:
    """Turn a network failure into a retryable ServiceError.

    Certificate failures are returned unchanged: no amount of retrying fixes
    an untrusted peer.
    """
    logger.debug(">> %s uri: %s err: %s", method, uri, exc)
    if is_certificate_error(exc):
        return exc
    return ServiceError(str(exc), retry=1)


def parse_retry_after(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        logger.info("couldn't parse retry-after header %r", value)
        return 0


async def mk_err(response: httpx.Response) -> ServiceError:
    """Build a ServiceError from a non-2xx response, reading its body."""
    method = response.request.headers.get(METHOD_HEADER, "")
    read_failure = ""
    try:
        data = await response.aread()
    except httpx.HTTPError as exc:
        data = b""
        read_failure = f"couldn't read message body: {exc}"
    log_response(response, data)

    msg = ErrorMessage()
    if data:
        try:
            msg = ErrorMessage.model_validate_json(data)
        except ValidationError:
            logger.info("%s: couldn't decode error body", method)
    return ServiceError(
        read_failure or msg.message,
        method=method,
        code=response.status_code,
        msg_code=msg.code,
        retry=parse_retry_after(response.headers.get("Retry-After")),
    )


class RequestClient:
    """Issues single B2 API calls.

    Never retries: each call returns its decoded reply or raises exactly one
    error, and recovery is left to the caller (see ``b2link.base.policy``).
    """

    def __init__(self, config: HTTPConfig | None = None) -> None:
        self._config = config or HTTPConfig()
        self._transport = AsyncTransport(self._config)

    @property
    def config(self) -> HTTPConfig:
        return self._config

    async def aclose(self) -> None:
        await self._transport.aclose()

    def _stamp_headers(self, method: str, headers: Mapping[str, str] | None) -> dict[str, str]:
        stamped = {key: escape_header(key, value) for key, value in (headers or {}).items()}
        stamped[REQUEST_ID_HEADER] = str(next_request_id())
        stamped[METHOD_HEADER] = method
        return stamped

    async def _send(
        self,
        method: str,
        verb: str,
        uri: str,
        headers: dict[str, str],
        body: RequestBody,
    ) -> httpx.Response:
        try:
            return await self._transport.send(verb, uri, headers=headers, body=body)
        except httpx.TransportError as exc:
            wrapped = wrap_transport_error(method, uri, exc)
            if wrapped is exc:
                raise
            raise wrapped from exc

    @overload
    async def make_request(
        self,
        method: str,
        verb: str,
        uri: str,
        *,
        b2req: BaseModel | Mapping[str, Any] | None = ...,
        response_model: type[ModelT],
        headers: Mapping[str, str] | None = ...,
        body: StreamBody | None = ...,
    ) -> ModelT: ...

    @overload
    async def make_request(
        self,
        method: str,
        verb: str,
        uri: str,
        *,
        b2req: BaseModel | Mapping[str, Any] | None = ...,
        response_model: None = ...,
        headers: Mapping[str, str] | None = ...,
        body: StreamBody | None = ...,
    ) -> None: ...

    async def make_request(
        self,
        method: str,
        verb: str,
        uri: str,
        *,
        b2req: BaseModel | Mapping[str, Any] | None = None,
        response_model: type[ModelT] | None = None,
        headers: Mapping[str, str] | None = None,
        body: StreamBody | None = None,
    ) -> ModelT | None:
        """Perform one call and decode its reply.

        Args:
            method: API name (e.g. ``b2_upload_part``), stamped on the request
                and used to classify failures.
            verb: HTTP verb.
            uri: Absolute request URI.
            b2req: JSON request shape. Takes precedence over ``body``.
            response_model: Model to decode a 200 reply into; the reply is
                drained and ``None`` returned when omitted.
            headers: Extra headers; file name and file info values are
                escaped.
            body: Raw body with explicit length, used for uploads.

        Raises:
            ServiceError: On a non-200 status or a network failure.
            B2Error: If a 200 reply cannot be decoded.
        """
        args: bytes | None = None
        request_body: RequestBody = body
        if b2req is not None:
            if isinstance(b2req, BaseModel):
                payload = b2req.model_dump(by_alias=True, exclude_none=True)
            else:
                payload = dict(b2req)
            json_body = JSONBody(payload)
            args = json_body.encode()
            request_body = json_body

        request_headers = self._stamp_headers(method, headers)
        log_request(method, verb, uri, request_headers, args)
        response = await self._send(method, verb, uri, request_headers, request_body)
        try:
            if response.status_code != 200:
                raise await mk_err(response)
            try:
                reply = await response.aread()
            except httpx.TransportError as exc:
                raise ServiceError(str(exc), retry=1) from exc
            log_response(response, reply)
            if response_model is None:
                return None
            try:
                return response_model.model_validate_json(reply)
            except ValidationError as exc:
                raise B2Error(f"{method}: couldn't decode response: {exc}") from exc
        finally:
            await response.aclose()

    async def open_stream(
        self,
        method: str,
        verb: str,
        uri: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Start a download and return the response with its body unread.

        Accepts 200 and 206; the caller owns closing the returned response.
        """
        request_headers = self._stamp_headers(method, headers)
        log_request(method, verb, uri, request_headers, None)
        response = await self._send(method, verb, uri, request_headers, None)
        if response.status_code not in (200, 206):
            try:
                raise await mk_err(response)
            finally:
                await response.aclose()
        log_response(response, None)
        return response


__all__ = [
    "METHOD_HEADER",
    "REQUEST_ID_HEADER",
    "RequestClient",
    "is_certificate_error",
    "mk_err",
    "next_request_id",
    "parse_retry_after",
    "redact",
]
