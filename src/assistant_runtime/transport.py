"""HTTP transport for the upstream Responses API."""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
import os
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import (
    IO,
    TYPE_CHECKING,
    Any,
    AsyncGenerator,
    Awaitable,
    Callable,
    Mapping,
    Optional,
    Union,
)

import httpx

from .errors import (
    PermanentTransportError,
    StreamInterruptedError,
    StreamTimeoutError,
    TransientTransportError,
    TransportError,
)
from .idempotency import IdempotencyKeyDeriver, canonical_json
from .retry import (
    ErrorKind,
    RetryDecision,
    RetryPolicy,
    RetryState,
    classify_exception,
    classify_status,
    is_safe_to_retry,
    parse_retry_after,
)

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

IDEMPOTENCY_FIELD = "_idempotency_key"

ProgressCallback = Callable[[int, int], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class FileReference:
    """A file on disk to upload as one multipart part."""

    path: Union[str, os.PathLike[str]]
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def resolved_filename(self) -> str:
        return self.filename or os.path.basename(os.fspath(self.path)) or "file"

    @property
    def resolved_content_type(self) -> str:
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.resolved_filename)
        return guessed or "application/octet-stream"


MultipartValue = Union[str, int, float, bool, None, Mapping[str, Any], list, FileReference, IO[bytes]]


@dataclass(frozen=True)
class RequestEnvelope:
    """Everything needed to issue (and re-issue) a single logical request."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    json_body: Any = None
    form_data: Optional[Mapping[str, str]] = None
    files: Optional[list[tuple[str, tuple[str, Any, str]]]] = None
    params: Optional[Mapping[str, Any]] = None
    idempotent: bool = False
    timeout: Optional[float] = None


class _ProgressReader:
    """Wrap a binary file so every chunk httpx reads is reported."""

    def __init__(self, handle: IO[bytes], tracker: "_ProgressTracker") -> None:
        self._handle = handle
        self._tracker = tracker

    def read(self, size: int = -1) -> bytes:
        chunk = self._handle.read(size)
        if chunk:
            self._tracker.advance(len(chunk))
        return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        position = self._handle.seek(offset, whence)
        if position == 0:
            # httpx rewinds before each attempt; restart the count.
            self._tracker.reset()
        return position

    def tell(self) -> int:
        return self._handle.tell()

    def fileno(self) -> int:
        return self._handle.fileno()

    @property
    def name(self) -> str:
        return getattr(self._handle, "name", "")


class _ProgressTracker:
    def __init__(self, total: int, callback: ProgressCallback) -> None:
        self.total = total
        self.sent = 0
        self._callback = callback

    def advance(self, count: int) -> None:
        self.sent += count
        self._callback(self.sent, self.total)

    def reset(self) -> None:
        self.sent = 0


def _file_size(handle: IO[bytes]) -> int:
    try:
        return os.fstat(handle.fileno()).st_size
    except (AttributeError, OSError, ValueError):
        pass
    try:
        current = handle.tell()
        end = handle.seek(0, os.SEEK_END)
        handle.seek(current)
        return end - current
    except (AttributeError, OSError):
        return 0


def _stringify_field(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value)
    if value is None:
        return ""
    return str(value)


def _extract_error_detail(raw: bytes) -> tuple[str, Any]:
    """Return a readable message and the decoded error body."""

    if not raw:
        return "Upstream API returned an empty error response.", None
    text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text, text
    if not isinstance(payload, dict):
        return text, payload

    message: Optional[str] = None
    extras: list[str] = []
    error = payload.get("error")
    if isinstance(error, dict):
        if isinstance(error.get("message"), str):
            message = error["message"]
        for key in ("type", "code", "param"):
            value = error.get(key)
            if isinstance(value, (str, int)) and value != "":
                extras.append(f"{key}={value}")
    if message is None:
        errors = payload.get("errors")
        if isinstance(payload.get("message"), str):
            message = payload["message"]
        elif isinstance(error, str):
            message = error
        elif isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0].get("message")
            if isinstance(first, str):
                message = first
    if message is None:
        message = text
    if extras:
        message = f"{message} [{' '.join(extras)}]"
    return message, payload


class Transport:
    """Issue JSON, multipart and SSE requests with retry and idempotency."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        base_path: str = "/v1",
        organization: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        idempotency: Optional[IdempotencyKeyDeriver] = None,
        idempotency_enabled: bool = True,
        idempotency_header: str = "Idempotency-Key",
        request_timeout: float = 120.0,
        connect_timeout: float = 10.0,
        sse_timeout: Optional[float] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._base_path = base_path
        self._api_key = api_key
        self._organization = organization
        self._retry_policy = retry_policy or RetryPolicy()
        self._idempotency = idempotency or IdempotencyKeyDeriver()
        self._idempotency_enabled = idempotency_enabled
        self._idempotency_header = idempotency_header
        self._request_timeout = request_timeout
        self._connect_timeout = connect_timeout
        self._sse_timeout = sse_timeout or request_timeout
        self._sleep = sleep or asyncio.sleep
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(request_timeout, connect=connect_timeout),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                http2=True,
            )
        self._client = client

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Sleep] = None,
    ) -> "Transport":
        api_key = settings.api_key.get_secret_value() if settings.api_key else None
        return cls(
            base_url=str(settings.base_url),
            api_key=api_key,
            base_path=settings.api_base_path,
            organization=settings.organization,
            client=client,
            retry_policy=RetryPolicy.from_settings(settings),
            idempotency=IdempotencyKeyDeriver.from_settings(settings),
            idempotency_enabled=settings.idempotency_enabled,
            idempotency_header=settings.idempotency_header,
            request_timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            sse_timeout=settings.sse_timeout,
            sleep=sleep,
        )

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def post_json(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        idempotent: bool = False,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """POST ``payload`` as JSON and return the decoded JSON object."""

        body = dict(payload)
        supplied_key = body.pop(IDEMPOTENCY_FIELD, None)
        request_headers = self._build_headers(headers, accept="application/json", json_body=True)
        endpoint = self._endpoint(path)
        if idempotent:
            self._attach_idempotency_key(
                request_headers, "POST", endpoint, canonical_json(body), supplied_key
            )
        envelope = RequestEnvelope(
            method="POST",
            path=endpoint,
            headers=request_headers,
            json_body=body,
            idempotent=idempotent,
            timeout=timeout,
        )
        response = await self._send(envelope)
        return self._decode(response)

    async def post_multipart(
        self,
        path: str,
        fields: Mapping[str, MultipartValue],
        *,
        idempotent: bool = False,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        """POST a multipart form, streaming file parts from open handles.

        Scalar fields are sent as text parts. :class:`FileReference` values
        are opened for the duration of the call; open binary file objects are
        used as given and left open. ``progress(sent, total)`` fires as file
        bytes are read by the encoder.
        """

        remaining = dict(fields)
        supplied_key = remaining.pop(IDEMPOTENCY_FIELD, None)
        request_headers = self._build_headers(headers, accept="application/json")
        endpoint = self._endpoint(path)

        with ExitStack() as stack:
            form_data: dict[str, str] = {}
            files: list[tuple[str, tuple[str, Any, str]]] = []
            fingerprint: dict[str, Any] = {}
            handles: list[tuple[str, str, IO[bytes], str]] = []

            for name, value in remaining.items():
                if isinstance(value, FileReference):
                    handle = stack.enter_context(open(value.path, "rb"))
                    handles.append(
                        (name, value.resolved_filename, handle, value.resolved_content_type)
                    )
                elif hasattr(value, "read"):
                    filename = os.path.basename(getattr(value, "name", "") or "") or "file"
                    content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
                    handles.append((name, filename, value, content_type))  # type: ignore[arg-type]
                else:
                    form_data[name] = _stringify_field(value)
                    fingerprint[name] = form_data[name]

            tracker = None
            if progress is not None:
                total = sum(_file_size(handle) for _, _, handle, _ in handles)
                tracker = _ProgressTracker(total, progress)
            for name, filename, handle, content_type in handles:
                fingerprint[name] = {"filename": filename, "size": _file_size(handle)}
                fileobj: Any = _ProgressReader(handle, tracker) if tracker else handle
                files.append((name, (filename, fileobj, content_type)))

            if idempotent:
                self._attach_idempotency_key(
                    request_headers, "POST", endpoint, canonical_json(fingerprint), supplied_key
                )
            envelope = RequestEnvelope(
                method="POST",
                path=endpoint,
                headers=request_headers,
                form_data=form_data,
                files=files,
                idempotent=idempotent,
                timeout=timeout,
            )
            response = await self._send(envelope)
        return self._decode(response)

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        envelope = RequestEnvelope(
            method="GET",
            path=self._endpoint(path),
            headers=self._build_headers(headers, accept="application/json"),
            params=params,
            idempotent=True,
            timeout=timeout,
        )
        response = await self._send(envelope)
        return self._decode(response)

    async def delete(
        self,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        envelope = RequestEnvelope(
            method="DELETE",
            path=self._endpoint(path),
            headers=self._build_headers(headers, accept="application/json"),
            idempotent=True,
            timeout=timeout,
        )
        await self._send(envelope)
        return True

    async def stream_sse(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> AsyncGenerator[str, None]:
        """Open an SSE stream and yield raw lines, blank separators included.

        The stream is never retried. Closing the generator closes the HTTP
        response and releases the connection.
        """

        body = dict(payload)
        body.pop(IDEMPOTENCY_FIELD, None)
        body["stream"] = True
        request_headers = self._build_headers(
            headers, accept="text/event-stream", json_body=True
        )
        url = self._url(self._endpoint(path))
        read_timeout = timeout if timeout is not None else self._sse_timeout
        started = False

        try:
            async with self._client.stream(
                "POST",
                url,
                headers=request_headers,
                json=body,
                timeout=httpx.Timeout(read_timeout, connect=self._connect_timeout),
            ) as response:
                kind = classify_status(response.status_code)
                if kind is not None:
                    raw = await response.aread()
                    detail, error_body = _extract_error_detail(raw)
                    raise self._error_for(
                        kind, response.status_code, detail, attempts=1, body=error_body
                    )
                started = True
                logger.debug("Opened SSE stream to %s", url)
                async for line in response.aiter_lines():
                    yield line
        except httpx.ReadTimeout as exc:
            if started:
                raise StreamTimeoutError(
                    None, f"SSE stream stalled: {exc}", kind=ErrorKind.TIMEOUT
                ) from exc
            raise self._error_for(ErrorKind.TIMEOUT, None, str(exc), attempts=1) from exc
        except httpx.HTTPError as exc:
            kind = classify_exception(exc)
            if started:
                raise StreamInterruptedError(
                    None, f"SSE stream interrupted: {exc}", kind=kind
                ) from exc
            raise self._error_for(kind, None, str(exc), attempts=1) from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _endpoint(self, path: str) -> str:
        if path.startswith("/"):
            return path
        prefix = self._base_path.rstrip("/")
        return f"{prefix}/{path.lstrip('/')}"

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}{endpoint}"

    def _build_headers(
        self,
        extra: Optional[Mapping[str, str]],
        *,
        accept: str,
        json_body: bool = False,
    ) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": accept}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if self._organization:
            headers["OpenAI-Organization"] = self._organization
        if extra:
            headers.update(extra)
        return headers

    def _attach_idempotency_key(
        self,
        headers: dict[str, str],
        method: str,
        endpoint: str,
        canonical_body: bytes,
        supplied_key: Any,
    ) -> None:
        if not self._idempotency_enabled:
            return
        if isinstance(supplied_key, str) and supplied_key:
            headers[self._idempotency_header] = supplied_key
            return
        existing = {name.lower() for name in headers}
        if self._idempotency_header.lower() in existing:
            return
        headers[self._idempotency_header] = self._idempotency.derive(
            endpoint, canonical_body, method=method
        )

    def _request_timeout_for(self, envelope: RequestEnvelope) -> httpx.Timeout:
        seconds = envelope.timeout if envelope.timeout is not None else self._request_timeout
        return httpx.Timeout(seconds, connect=self._connect_timeout)

    async def _send(self, envelope: RequestEnvelope) -> httpx.Response:
        """Issue ``envelope`` until it succeeds or the retry policy gives up.

        Headers, including any idempotency key, are fixed before the first
        attempt so every retry replays the identical request.
        """

        url = self._url(envelope.path)
        state = RetryState()
        while True:
            state.attempt += 1
            logger.debug(
                "%s %s (attempt %d)", envelope.method, envelope.path, state.attempt
            )
            try:
                response = await self._client.request(
                    envelope.method,
                    url,
                    headers=dict(envelope.headers),
                    json=envelope.json_body,
                    data=envelope.form_data or None,
                    files=envelope.files or None,
                    params=envelope.params,
                    timeout=self._request_timeout_for(envelope),
                )
            except httpx.HTTPError as exc:
                kind = classify_exception(exc)
                if is_safe_to_retry(exc, idempotent=envelope.idempotent):
                    decision = self._retry_policy.next_delay(state.attempt, kind)
                else:
                    decision = RetryDecision(retry=False)
                state.record(kind, decision)
                if not decision.retry:
                    raise self._error_for(
                        kind, None, str(exc) or type(exc).__name__, attempts=state.attempt
                    ) from exc
                logger.warning(
                    "%s %s failed (%s); retrying in %.2fs (attempt %d/%d)",
                    envelope.method,
                    envelope.path,
                    kind.value,
                    decision.delay,
                    state.attempt,
                    self._retry_policy.max_attempts,
                )
                await self._sleep(decision.delay)
                continue

            kind = classify_status(response.status_code)
            if kind is None:
                return response

            retry_after = None
            if response.status_code in (429, 503):
                retry_after = parse_retry_after(response.headers.get("retry-after"))
            decision = self._retry_policy.next_delay(
                state.attempt, kind, retry_after=retry_after
            )
            state.record(kind, decision)
            if not decision.retry:
                detail, error_body = _extract_error_detail(response.content)
                if state.attempt > 1:
                    logger.warning(
                        "%s %s gave up after %d attempts (status %d)",
                        envelope.method,
                        envelope.path,
                        state.attempt,
                        response.status_code,
                    )
                raise self._error_for(
                    kind,
                    response.status_code,
                    detail,
                    attempts=state.attempt,
                    body=error_body,
                )
            logger.warning(
                "%s %s returned %d; retrying in %.2fs (attempt %d/%d)",
                envelope.method,
                envelope.path,
                response.status_code,
                decision.delay,
                state.attempt,
                self._retry_policy.max_attempts,
            )
            await response.aclose()
            await self._sleep(decision.delay)

    @staticmethod
    def _error_for(
        kind: ErrorKind,
        status_code: Optional[int],
        detail: Any,
        *,
        attempts: int,
        body: Any = None,
    ) -> TransportError:
        error_cls = TransientTransportError if kind.is_transient else PermanentTransportError
        return error_cls(status_code, detail, kind=kind, attempts=attempts, body=body)

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        if content_type.lower().startswith("text/plain"):
            return {"text": response.text}
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise PermanentTransportError(
                response.status_code,
                f"Malformed JSON response: {exc}",
                kind=ErrorKind.MALFORMED_RESPONSE,
            ) from exc
        if not isinstance(payload, dict):
            raise PermanentTransportError(
                response.status_code,
                "Unexpected response format: expected a JSON object",
                kind=ErrorKind.MALFORMED_RESPONSE,
                body=payload,
            )
        return payload


__all__ = [
    "FileReference",
    "IDEMPOTENCY_FIELD",
    "ProgressCallback",
    "RequestEnvelope",
    "Transport",
]
