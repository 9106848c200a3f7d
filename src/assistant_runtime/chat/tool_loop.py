"""Round-limited tool-calling loop."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from ..errors import (
    RoundLimitExceeded,
    ToolExecutionError,
    ToolLoopError,
    TransportError,
)
from ..services.tool_invocations import InvocationState, ToolInvocationsStore
from ..utils.json_access import ShapeError
from .envelope import ResponseEnvelope, normalize_response
from .types import (
    LoopResult,
    LoopStatus,
    ToolCallRequest,
    ToolCallResult,
    ToolExecutor,
    TurnSender,
    TurnState,
)

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

ContextAppender = Callable[
    [dict[str, Any], ResponseEnvelope, list[ToolCallResult]], dict[str, Any]
]


def append_function_call_outputs(
    context: dict[str, Any],
    envelope: ResponseEnvelope,
    results: list[ToolCallResult],
) -> dict[str, Any]:
    """Chain the next Responses API turn onto the previous response.

    The next payload keeps every field of ``context``, points
    ``previous_response_id`` at the response that asked for the tools and
    replaces ``input`` with one ``function_call_output`` item per result.
    """

    next_context = dict(context)
    if envelope.response_id:
        next_context["previous_response_id"] = envelope.response_id
    next_context["input"] = [
        {
            "type": "function_call_output",
            "call_id": result.tool_call_id,
            "output": result.output_text(),
        }
        for result in results
    ]
    return next_context


def append_chat_tool_messages(
    context: dict[str, Any],
    envelope: ResponseEnvelope,
    results: list[ToolCallResult],
) -> dict[str, Any]:
    """Chat Completions variant: grow ``messages`` with the assistant turn and tool replies."""

    messages = list(context.get("messages") or [])
    messages.append(
        {
            "role": "assistant",
            "content": envelope.text or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in envelope.tool_calls
            ],
        }
    )
    for result in results:
        messages.append(
            {
                "role": "tool",
                "tool_call_id": result.tool_call_id,
                "content": result.output_text(),
            }
        )
    next_context = dict(context)
    next_context["messages"] = messages
    return next_context


def _error_result(call: ToolCallRequest, message: str) -> ToolCallResult:
    return ToolCallResult(
        tool_call_id=call.id,
        output={"error": message, "tool": call.name or "unknown"},
        name=call.name or None,
        is_error=True,
    )


class ToolCallLoop:
    """Send a turn, run requested tools, resubmit, until the model is done.

    ``rounds_used`` counts sends. When a response still requests tools after
    ``max_rounds`` sends the loop stops with ``ROUND_LIMIT_REACHED`` and leaves
    those calls unexecuted in ``state.pending_tool_calls``.
    """

    def __init__(
        self,
        sender: TurnSender,
        executor: ToolExecutor,
        *,
        max_rounds: int = 3,
        parallel: bool = False,
        append_results: Optional[ContextAppender] = None,
        invocation_store: Optional[ToolInvocationsStore] = None,
        raise_on_round_limit: bool = False,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self._sender = sender
        self._executor = executor
        self._max_rounds = max_rounds
        self._parallel = parallel
        self._append_results = append_results or append_function_call_outputs
        self._invocation_store = invocation_store
        self._raise_on_round_limit = raise_on_round_limit

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        sender: TurnSender,
        executor: ToolExecutor,
        **kwargs: Any,
    ) -> "ToolCallLoop":
        kwargs.setdefault("max_rounds", settings.tool_calling_max_rounds)
        kwargs.setdefault("parallel", settings.tool_calling_parallel)
        return cls(sender, executor, **kwargs)

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    async def run(self, context: Mapping[str, Any]) -> LoopResult:
        state = TurnState(max_rounds=self._max_rounds, context=dict(context))

        while True:
            state.status = LoopStatus.SENDING
            state.rounds_used += 1
            round_number = state.rounds_used
            logger.info("Tool loop round %d/%d", round_number, state.max_rounds)

            state.status = LoopStatus.AWAITING_RESPONSE
            try:
                raw = await self._sender.send_turn(state.context)
                envelope = normalize_response(raw)
            except (TransportError, ShapeError) as exc:
                state.status = LoopStatus.FAILED
                logger.warning("Tool loop round %d failed: %s", round_number, exc)
                raise ToolLoopError(
                    f"Tool loop failed in round {round_number}: {exc}",
                    round=round_number,
                    state=state,
                ) from exc
            except Exception as exc:
                state.status = LoopStatus.FAILED
                logger.exception("Tool loop round %d raised unexpectedly", round_number)
                raise ToolLoopError(
                    f"Tool loop failed in round {round_number}: {exc}",
                    round=round_number,
                    state=state,
                ) from exc

            state.last_response = envelope
            if not envelope.tool_calls:
                state.status = LoopStatus.DONE
                state.pending_tool_calls = []
                return self._result(state)

            state.status = LoopStatus.TOOL_CALLS_REQUESTED
            state.pending_tool_calls = list(envelope.tool_calls)

            if state.rounds_used >= state.max_rounds:
                state.status = LoopStatus.ROUND_LIMIT_REACHED
                logger.warning(
                    "Tool execution stopped after %d round(s) with %d pending call(s)",
                    state.rounds_used,
                    len(state.pending_tool_calls),
                )
                result = self._result(state)
                if self._raise_on_round_limit:
                    raise RoundLimitExceeded(result)
                return result

            state.status = LoopStatus.EXECUTING_TOOLS
            try:
                results = await self._execute_round(envelope, state.pending_tool_calls)
            except ToolExecutionError as exc:
                state.status = LoopStatus.FAILED
                raise ToolLoopError(
                    f"Fatal tool failure in round {round_number}: {exc}",
                    round=round_number,
                    state=state,
                ) from exc

            state.results.extend(results)
            state.pending_tool_calls = []
            state.context = self._append_results(state.context, envelope, results)

    @staticmethod
    def _result(state: TurnState) -> LoopResult:
        return LoopResult(
            status=state.status,
            response=state.last_response,
            rounds_used=state.rounds_used,
            tool_results=list(state.results),
            state=state,
        )

    async def _execute_round(
        self, envelope: ResponseEnvelope, calls: list[ToolCallRequest]
    ) -> list[ToolCallResult]:
        if not self._parallel or len(calls) < 2:
            return [await self._execute_one(envelope, call) for call in calls]

        outcomes = await asyncio.gather(
            *(self._execute_one(envelope, call) for call in calls),
            return_exceptions=True,
        )
        results: list[ToolCallResult] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        return results

    async def _execute_one(
        self, envelope: ResponseEnvelope, call: ToolCallRequest
    ) -> ToolCallResult:
        if not call.name:
            logger.warning("Tool call %s missing function name; skipping execution", call.id)
            return _error_result(call, "Tool call missing function name")
        if call.arguments_error:
            logger.warning("Tool argument parse failure for %s: %s", call.name, call.arguments_error)
            return _error_result(call, f"{call.arguments_error} for tool {call.name}")
        if not isinstance(call.arguments, dict):
            return _error_result(
                call,
                f"Tool {call.name} expected a JSON object for arguments but "
                f"received {type(call.arguments).__name__}",
            )

        invocation_id = await self._record(envelope, call, InvocationState.RUNNING)
        try:
            raw_result = await self._executor.call_tool(call.name, dict(call.arguments))
            output = self._executor.format_tool_result(raw_result)
        except ToolExecutionError as exc:
            await self._record(envelope, call, InvocationState.FAILED, str(exc), invocation_id)
            if exc.fatal:
                raise
            logger.warning("Tool '%s' failed: %s", call.name, exc)
            return _error_result(call, str(exc))
        except Exception as exc:
            logger.exception("Tool '%s' raised an exception", call.name)
            await self._record(envelope, call, InvocationState.FAILED, str(exc), invocation_id)
            return _error_result(call, f"Tool error: {exc}")

        await self._record(envelope, call, InvocationState.COMPLETED, output, invocation_id)
        return ToolCallResult(tool_call_id=call.id, output=output, name=call.name)

    async def _record(
        self,
        envelope: ResponseEnvelope,
        call: ToolCallRequest,
        state: InvocationState,
        summary: Any = None,
        invocation_id: Optional[str] = None,
    ) -> Optional[str]:
        if self._invocation_store is None or not envelope.response_id:
            return None
        return await self._invocation_store.put(
            {
                "id": invocation_id,
                "response_id": envelope.response_id,
                "call_id": call.id,
                "name": call.name,
                "arguments": call.arguments,
                "state": state.value,
                "result_summary": summary,
            }
        )


__all__ = [
    "ContextAppender",
    "ToolCallLoop",
    "append_chat_tool_messages",
    "append_function_call_outputs",
]
