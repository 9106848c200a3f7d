"""Responses API client built on :class:`~assistant_runtime.transport.Transport`."""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncGenerator,
    Callable,
    Mapping,
    Optional,
)

import httpx

from .sse import SseEvent, SseEventParser
from .streaming import NormalizedEvent, accumulate, to_text_chunks
from .transport import MultipartValue, ProgressCallback, Transport

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

RESPONSES_PATH = "responses"


class ResponsesClient:
    """Thin wrapper exposing the endpoints the runtime relies on.

    Also satisfies the tool loop's ``TurnSender`` contract through
    :meth:`send_turn`.
    """

    def __init__(self, transport: Transport, *, default_model: Optional[str] = None) -> None:
        self._transport = transport
        self._default_model = default_model

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "ResponsesClient":
        return cls(
            Transport.from_settings(settings, client=client),
            default_model=settings.default_model,
        )

    @property
    def transport(self) -> Transport:
        return self._transport

    async def aclose(self) -> None:
        await self._transport.aclose()

    def _with_model(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        body = dict(payload)
        if not body.get("model") and self._default_model:
            body["model"] = self._default_model
        return body

    # Responses ---------------------------------------------------------
    async def create_response(
        self,
        payload: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Create a response; retried safely under an idempotency key."""

        body = self._with_model(payload)
        logger.debug("Creating response with model %s", body.get("model"))
        return await self._transport.post_json(
            RESPONSES_PATH, body, idempotent=True, timeout=timeout
        )

    async def send_turn(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.create_response(payload)

    def stream_response(
        self,
        payload: Mapping[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> AsyncGenerator[SseEvent, None]:
        """Yield parsed SSE events for a streamed response."""

        lines = self._transport.stream_sse(
            RESPONSES_PATH, self._with_model(payload), timeout=timeout
        )
        return SseEventParser().aparse(lines)

    def stream_text(
        self,
        payload: Mapping[str, Any],
        *,
        on_chunk: Optional[Callable[[str], Any]] = None,
        timeout: Optional[float] = None,
    ) -> AsyncGenerator[str, None]:
        events = self.stream_response(payload, timeout=timeout)
        return to_text_chunks(events, on_chunk)

    def stream_accumulated(
        self,
        payload: Mapping[str, Any],
        *,
        raise_on_cancel: bool = False,
        timeout: Optional[float] = None,
    ) -> AsyncGenerator[NormalizedEvent, None]:
        events = self.stream_response(payload, timeout=timeout)
        return accumulate(events, raise_on_cancel=raise_on_cancel)

    async def get_response(self, response_id: str) -> dict[str, Any]:
        if not response_id:
            raise ValueError("response_id must be provided")
        return await self._transport.get_json(f"{RESPONSES_PATH}/{response_id}")

    async def cancel_response(self, response_id: str) -> dict[str, Any]:
        if not response_id:
            raise ValueError("response_id must be provided")
        return await self._transport.post_json(
            f"{RESPONSES_PATH}/{response_id}/cancel", {}, idempotent=True
        )

    async def delete_response(self, response_id: str) -> bool:
        if not response_id:
            raise ValueError("response_id must be provided")
        return await self._transport.delete(f"{RESPONSES_PATH}/{response_id}")

    async def list_input_items(
        self, response_id: str, *, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        if not response_id:
            raise ValueError("response_id must be provided")
        return await self._transport.get_json(
            f"{RESPONSES_PATH}/{response_id}/input_items", params=params
        )

    # Files & audio -----------------------------------------------------
    async def upload_file(
        self,
        file: MultipartValue,
        *,
        purpose: str = "assistants",
        progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        return await self._transport.post_multipart(
            "files",
            {"purpose": purpose, "file": file},
            idempotent=True,
            progress=progress,
        )

    async def transcribe_audio(
        self,
        file: MultipartValue,
        *,
        model: str = "whisper-1",
        progress: Optional[ProgressCallback] = None,
        **options: Any,
    ) -> dict[str, Any]:
        fields: dict[str, MultipartValue] = {"model": model, "file": file}
        fields.update(options)
        return await self._transport.post_multipart(
            "audio/transcriptions", fields, idempotent=True, progress=progress
        )


__all__ = ["RESPONSES_PATH", "ResponsesClient"]
