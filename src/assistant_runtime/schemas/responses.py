"""Pydantic models for the streaming relay endpoint."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict


class ResponseStreamRequest(BaseModel):
    """Incoming request to stream a model response to the browser."""

    model: Optional[str] = None
    input: Union[str, List[Dict[str, Any]]]
    instructions: Optional[str] = None
    previous_response_id: Optional[str] = None
    conversation: Optional[Union[str, Dict[str, Any]]] = None

    # Generation parameters
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None

    # Tool calling
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    parallel_tool_calls: Optional[bool] = None

    metadata: Optional[Dict[str, Any]] = None
    user: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Serialize the request for the Responses API, enforcing defaults."""

        payload = self.model_dump(by_alias=True, exclude_none=True)
        payload.setdefault("model", default_model)
        return payload


__all__ = ["ResponseStreamRequest"]
