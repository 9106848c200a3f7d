"""Registry of caller-defined tools exposed to the model."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from ..errors import ToolNotFoundError

logger = logging.getLogger(__name__)

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    handler: Callable[..., Any]
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))

    def to_definition(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolRegistry:
    """Name → callable mapping satisfying the tool loop's executor contract.

    Handlers receive the decoded arguments as keyword arguments. Coroutine
    functions are awaited; plain functions run in a worker thread so a
    parallel round does not block the event loop.
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        *,
        description: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> RegisteredTool:
        if not name:
            raise ValueError("Tool name must not be empty")
        if name in self._tools:
            logger.debug("Replacing registered tool %s", name)
        tool = RegisteredTool(
            name=name,
            handler=handler,
            description=description if description is not None else (inspect.getdoc(handler) or ""),
            parameters=parameters or dict(_EMPTY_SCHEMA),
        )
        self._tools[name] = tool
        return tool

    def tool(
        self,
        name: Optional[str] = None,
        *,
        description: Optional[str] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            self.register(
                name or handler.__name__,
                handler,
                description=description,
                parameters=parameters,
            )
            return handler

        return decorator

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def get_tool_definitions(self, names: Optional[Iterable[str]] = None) -> list[dict[str, Any]]:
        if names is None:
            return [tool.to_definition() for tool in self._tools.values()]
        return [self._tools[name].to_definition() for name in names if name in self._tools]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> Any:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Unknown tool: {name}", tool_name=name)
        kwargs = dict(arguments or {})
        if inspect.iscoroutinefunction(tool.handler):
            return await tool.handler(**kwargs)
        result = await asyncio.to_thread(tool.handler, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    @staticmethod
    def format_tool_result(result: Any) -> Any:
        """Return ``result`` as a string or JSON-serializable value."""

        if result is None:
            return ""
        if isinstance(result, (str, int, float, bool, dict, list)):
            return result
        if hasattr(result, "model_dump"):
            return result.model_dump()
        return json.loads(json.dumps(result, default=str))


__all__ = ["RegisteredTool", "ToolRegistry"]
