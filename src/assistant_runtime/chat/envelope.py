"""Normalize raw Responses / Chat Completions payloads into one envelope."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..utils.json_access import (
    dig,
    first_present,
    optional_str,
    require_list,
    require_mapping,
    require_str,
)
from .types import ToolCallRequest


@dataclass
class ResponseEnvelope:
    response_id: str
    conversation_id: Optional[str] = None
    status: Optional[str] = None
    text: str = ""
    message_blocks: list[dict[str, Any]] = field(default_factory=list)
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    usage: Optional[dict[str, Any]] = None
    finish_reason: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def parse_tool_call(raw: Mapping[str, Any], index: int = 0) -> ToolCallRequest:
    """Build a :class:`ToolCallRequest` from any of the known tool-call shapes.

    Handles Responses ``function_call`` items (``call_id``/``name``/``arguments``),
    legacy ``tool_call`` items and ``{"id", "function": {...}}`` entries used by
    Chat Completions and ``required_action`` payloads.
    """

    nested = raw.get("tool_call")
    if isinstance(nested, Mapping):
        raw = nested

    call_id = first_present(raw, ("call_id",), ("id",))
    name = first_present(raw, ("name",), ("function", "name"))
    arguments = dig(raw, "arguments")
    if arguments is None:
        arguments = dig(raw, "function", "arguments")

    arguments_error: Optional[str] = None
    if isinstance(arguments, str):
        text = arguments.strip()
        if not text:
            arguments = {}
        else:
            try:
                arguments = json.loads(text)
            except json.JSONDecodeError as exc:
                arguments_error = f"Invalid JSON arguments: {exc.msg}"
    elif arguments is None:
        arguments = {}

    return ToolCallRequest(
        id=str(call_id) if call_id else f"call_{index}",
        name=name if isinstance(name, str) else "",
        arguments=arguments,
        arguments_error=arguments_error,
    )


def _collect_output(
    output: list[Any],
) -> tuple[list[str], list[dict[str, Any]], list[Mapping[str, Any]]]:
    texts: list[str] = []
    blocks: list[dict[str, Any]] = []
    calls: list[Mapping[str, Any]] = []

    for item in output:
        if not isinstance(item, Mapping):
            continue
        item_type = item.get("type")
        if item_type == "output_text":
            text = dig(item, "content", 0, "text")
            if text is None:
                text = item.get("text")
            if isinstance(text, str) and text:
                texts.append(text)
                blocks.append({"type": "text", "text": text})
        elif item_type == "message" and isinstance(item.get("content"), list):
            block_texts: list[str] = []
            for block in item["content"]:
                if not isinstance(block, Mapping):
                    continue
                blocks.append(dict(block))
                if block.get("type") in ("text", "output_text") and isinstance(
                    block.get("text"), str
                ):
                    block_texts.append(block["text"])
            joined = "\n".join(text for text in block_texts if text).strip()
            if joined:
                texts.append(joined)
        elif item_type in ("function_call", "tool_call"):
            calls.append(item)
    return texts, blocks, calls


def normalize_response(raw: Any) -> ResponseEnvelope:
    """Return a :class:`ResponseEnvelope` for a decoded upstream response.

    Raises :class:`ShapeError` when the payload is not an object, lacks an ``id``
    or carries a mistyped ``status`` or ``output``.
    """

    raw = require_mapping(raw)
    response_id = require_str(raw, "id")
    status = optional_str(raw, "status")

    output: list[Any] = []
    for key in ("output", "outputs"):
        if raw.get(key) is not None:
            output = require_list(raw, key)
            break

    texts, blocks, raw_calls = _collect_output(output)

    if not raw_calls:
        required = dig(raw, "required_action", "submit_tool_outputs", "tool_calls")
        if isinstance(required, list):
            raw_calls = [call for call in required if isinstance(call, Mapping)]

    message = dig(raw, "choices", 0, "message")
    if isinstance(message, Mapping):
        content = message.get("content")
        if isinstance(content, str) and content:
            texts.append(content)
            blocks.append({"type": "text", "text": content})
        chat_calls = message.get("tool_calls")
        if not raw_calls and isinstance(chat_calls, list):
            raw_calls = [call for call in chat_calls if isinstance(call, Mapping)]

    text = "\n".join(texts)
    if not text and isinstance(raw.get("output_text"), str):
        text = raw["output_text"]

    usage = first_present(raw, ("usage",), ("token_usage",))
    finish_reason = first_present(
        raw, ("finish_reason",), ("status",), ("choices", 0, "finish_reason")
    )
    conversation_id = first_present(raw, ("conversation_id",), ("conversation", "id"))

    return ResponseEnvelope(
        response_id=response_id,
        conversation_id=str(conversation_id) if conversation_id else None,
        status=status,
        text=text,
        message_blocks=blocks,
        tool_calls=[parse_tool_call(call, index) for index, call in enumerate(raw_calls)],
        usage=usage if isinstance(usage, dict) else None,
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        raw=dict(raw),
    )


__all__ = ["ResponseEnvelope", "normalize_response", "parse_tool_call"]
