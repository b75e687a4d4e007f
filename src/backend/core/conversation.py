"""
Streaming tool-calling conversation engine.

One call to ``ConversationEngine.run_turn`` drives a turn through its states:

    Requesting -> Streaming -> (ToolCallsPending -> ExecutingTools -> Requesting)*
               -> Completed | Failed | Cancelled

Content is forwarded to the TurnSink as it streams in. When the model finishes
with tool calls, the calls run one at a time against the ToolRegistry, their
results are appended as ``tool`` messages and a continuation is requested
without re-advertising tools. The sink delivers exactly one completion signal.
"""

from __future__ import annotations

import asyncio
import json
import time

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from core.cancellation import CancellationToken
from core.constants import (
    MAX_TOOL_RESULT_MESSAGES,
    TOOL_CALLS_REQUESTED_NOTICE,
    TOOL_CONTENT_MAX_CHARS,
    TOOL_CONTENT_TRUNCATED_MARKER,
    TOOL_ERROR_HINT,
    TOOL_EXECUTED_NOTICE,
    TOOL_EXECUTION_TIMEOUT_SECONDS,
    TOOL_LIMIT_NOTICE,
    TOOL_POLL_INTERVAL_SECONDS,
    TOOL_PROGRESS_NOTICE,
    TOOL_RESULT_PREVIEW_CHARS,
)
from core.exceptions import (
    CancellationError,
    EmptyConversationError,
    StreamDecodeError,
    TransportError,
)
from core.multimodal import MultimodalPreprocessor, TurnPlan, history_friendly_content
from core.stream_sink import TurnSink
from core.tool_call_assembler import StreamingAccumulator
from core.tool_format import filter_tools, to_openai_tool
from integrations.llm_client import LLMClient
from integrations.tool_registry import ToolRegistry
from models.chat_models import ConversationMessage, ToolCallRequest, ToolSelection
from models.mcp_models import ToolError, ToolErrorKind, ToolResult
from utils.content_filter import filter_content
from utils.logger import logger
from utils.metrics import turns_total

#: Finish reason reported when the tool-result ceiling ends a turn
FINISH_REASON_TOOL_LIMIT = "tool_limit"


class TurnState(str, Enum):
    REQUESTING = "requesting"
    STREAMING = "streaming"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.COMPLETED, TurnState.FAILED, TurnState.CANCELLED)


@dataclass
class TurnOutcome:
    """What a turn produced, returned once the sink has been completed."""

    state: TurnState = TurnState.REQUESTING
    messages: list[ConversationMessage] = field(default_factory=list)
    final_text: str = ""
    tool_result_count: int = 0
    llm_requests: int = 0
    tool_names: list[str] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class _BatchResult:
    messages: list[ConversationMessage]
    all_unavailable: bool
    limit_reached: bool


def truncate_tool_content(content: str, max_chars: int = TOOL_CONTENT_MAX_CHARS) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + TOOL_CONTENT_TRUNCATED_MARKER


def tool_message_content(call: ToolCallRequest, outcome: ToolResult | ToolError) -> str:
    """Body of the ``tool`` message answering ``call``."""
    if isinstance(outcome, ToolResult):
        return outcome.to_content()
    return json.dumps(outcome.to_payload(tool_call_id=call.id, hint=TOOL_ERROR_HINT), ensure_ascii=False)


def _answered_only(assistant: ConversationMessage, tool_messages: list[ConversationMessage]) -> ConversationMessage:
    """Copy of ``assistant`` keeping only the tool calls that received a tool message."""
    answered = {m.tool_call_id for m in tool_messages}
    return assistant.model_copy(update={"tool_calls": [c for c in assistant.tool_calls or [] if c.id in answered]})


class ConversationEngine:
    """Drives one conversation turn at a time per call; holds no per-turn state.

    Args:
        llm: Streaming chat-completions client
        registry: Tool registry used for advertising and dispatch
        preprocessor: Multimodal preprocessor shaping each request
        default_model: Model used when a request names none
        max_tool_results: Ceiling on tool-result messages in the working conversation
        tool_content_max_chars: Tool output longer than this is truncated
        poll_interval: Seconds between progress notices for a running tool
        execution_timeout: Seconds after which a tool call is no longer awaited
    """

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        preprocessor: MultimodalPreprocessor,
        default_model: str,
        max_tool_results: int = MAX_TOOL_RESULT_MESSAGES,
        tool_content_max_chars: int = TOOL_CONTENT_MAX_CHARS,
        poll_interval: float = TOOL_POLL_INTERVAL_SECONDS,
        execution_timeout: float = TOOL_EXECUTION_TIMEOUT_SECONDS,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._preprocessor = preprocessor
        self.default_model = default_model
        self.max_tool_results = max_tool_results
        self.tool_content_max_chars = tool_content_max_chars
        self.poll_interval = poll_interval
        self.execution_timeout = execution_timeout
        self._background_tools: set[asyncio.Task[ToolResult | ToolError]] = set()

    @staticmethod
    def _transition(outcome: TurnOutcome, state: TurnState) -> None:
        logger.debug(f"Turn state {outcome.state.value} -> {state.value}")
        outcome.state = state

    async def run_turn(
        self,
        messages: Sequence[ConversationMessage],
        sink: TurnSink,
        token: CancellationToken,
        model: str | None = None,
        tool_selection: ToolSelection | None = None,
    ) -> TurnOutcome:
        """Run one turn to a terminal state. The sink is always completed exactly once.

        Raises:
            asyncio.CancelledError: If the task running the turn is cancelled (after
                cancelling the token and the sink)
        """
        model = model or self.default_model
        working = list(messages)
        # The ceiling covers tool results already in the conversation
        outcome = TurnOutcome(tool_result_count=sum(1 for m in working if m.role == "tool"))
        forwarded: list[str] = []
        plan: TurnPlan | None = None
        start = time.perf_counter()

        try:
            plan = self._preprocessor.plan(working, model)
            advertised = filter_tools(self._registry.list_tools(), tool_selection) if plan.include_tools else []
            advertised_names = frozenset(tool.name for tool in advertised)
            openai_tools = [to_openai_tool(tool) for tool in advertised]

            while True:
                token.check()
                body: dict = {"model": model, "messages": self._preprocessor.prepare_messages(working, plan)}
                # Tools are only offered on the first request of a turn
                if outcome.llm_requests == 0 and openai_tools:
                    body["tools"] = openai_tools

                accumulator = await self._stream(body, sink, token, outcome)
                outcome.llm_requests += 1
                forwarded.append(accumulator.text)

                calls = accumulator.tool_calls.finalize()
                assistant = accumulator.assistant_message()

                if accumulator.finish_reason != "tool_calls" or not calls:
                    if assistant is not None:
                        outcome.messages.append(assistant)
                    self._transition(outcome, TurnState.COMPLETED)
                    sink.complete(accumulator.finish_reason or "stop")
                    break

                self._transition(outcome, TurnState.TOOL_CALLS_PENDING)
                if outcome.tool_result_count >= self.max_tool_results:
                    self._stop_at_limit(outcome, sink)
                    break

                assistant_at = (len(working), len(outcome.messages))
                working.append(assistant)
                outcome.messages.append(assistant)
                sink.emit(TOOL_CALLS_REQUESTED_NOTICE)

                self._transition(outcome, TurnState.EXECUTING_TOOLS)
                batch = await self._execute_batch(calls, advertised_names, sink, token, outcome)
                working.extend(batch.messages)
                outcome.messages.extend(batch.messages)

                if batch.limit_reached:
                    answered = _answered_only(assistant, batch.messages)
                    working[assistant_at[0]] = answered
                    outcome.messages[assistant_at[1]] = answered
                    self._stop_at_limit(outcome, sink)
                    break
                if batch.all_unavailable:
                    logger.info("Every requested tool was unavailable; completing without continuation")
                    self._transition(outcome, TurnState.COMPLETED)
                    sink.complete("stop")
                    break

                self._transition(outcome, TurnState.REQUESTING)

        except CancellationError as e:
            self._transition(outcome, TurnState.CANCELLED)
            sink.cancel(e.reason)
        except (StreamDecodeError, TransportError) as e:
            if token.is_cancelled:
                self._transition(outcome, TurnState.CANCELLED)
                sink.cancel()
            else:
                logger.error(f"Turn failed: {e.message}", error_type=type(e).__name__)
                outcome.error = e
                self._transition(outcome, TurnState.FAILED)
                sink.fail(e)
        except EmptyConversationError as e:
            logger.warning(f"Turn rejected: {e.message}")
            outcome.error = e
            self._transition(outcome, TurnState.FAILED)
            sink.fail(e)
        except asyncio.CancelledError:
            token.cancel("turn task cancelled")
            self._transition(outcome, TurnState.CANCELLED)
            sink.cancel()
            raise
        except Exception as e:
            logger.error(f"Unexpected error in conversation turn: {e}", exc_info=True)
            outcome.error = e
            if token.is_cancelled:
                self._transition(outcome, TurnState.CANCELLED)
                sink.cancel()
            else:
                self._transition(outcome, TurnState.FAILED)
                sink.fail(e)
        finally:
            outcome.final_text = filter_content("".join(forwarded))
            self._log_turn(working, model, outcome, plan, time.perf_counter() - start)

        return outcome

    async def _stream(
        self,
        body: dict,
        sink: TurnSink,
        token: CancellationToken,
        outcome: TurnOutcome,
    ) -> StreamingAccumulator:
        accumulator = StreamingAccumulator()
        async with self._llm.open_stream(body) as events:
            self._transition(outcome, TurnState.STREAMING)
            async for event in events:
                token.check()
                fragment = accumulator.apply(event)
                if fragment:
                    sink.emit(fragment)
        return accumulator

    def _stop_at_limit(self, outcome: TurnOutcome, sink: TurnSink) -> None:
        logger.warning(
            f"Tool result ceiling reached ({outcome.tool_result_count}); completing turn",
            max_tool_results=self.max_tool_results,
        )
        sink.emit(TOOL_LIMIT_NOTICE.format(count=outcome.tool_result_count))
        self._transition(outcome, TurnState.COMPLETED)
        sink.complete(FINISH_REASON_TOOL_LIMIT)

    async def _execute_batch(
        self,
        calls: list[ToolCallRequest],
        advertised_names: frozenset[str],
        sink: TurnSink,
        token: CancellationToken,
        outcome: TurnOutcome,
    ) -> _BatchResult:
        """Run a batch sequentially in array order, one tool message per executed call."""
        messages: list[ConversationMessage] = []
        unavailable = 0
        limit_reached = False

        for call in calls:
            if outcome.tool_result_count >= self.max_tool_results:
                limit_reached = True
                break
            token.check()

            result: ToolResult | ToolError
            if call.name not in advertised_names:
                logger.warning(f"Model requested tool '{call.name}' which was not offered this turn")
                result = ToolError(
                    kind=ToolErrorKind.NOT_AVAILABLE,
                    tool_name=call.name,
                    message=f"Tool '{call.name}' is not available or not enabled for execution.",
                )
            else:
                result = await self._await_tool(call, sink, token)

            if isinstance(result, ToolError) and result.kind is ToolErrorKind.NOT_AVAILABLE:
                unavailable += 1

            content = truncate_tool_content(tool_message_content(call, result), self.tool_content_max_chars)
            messages.append(
                ConversationMessage(role="tool", tool_call_id=call.id, name=call.name, content=content)
            )
            outcome.tool_result_count += 1
            outcome.tool_names.append(call.name)
            sink.emit(TOOL_EXECUTED_NOTICE.format(name=call.name, preview=content[:TOOL_RESULT_PREVIEW_CHARS]))

        return _BatchResult(
            messages=messages,
            all_unavailable=bool(messages) and unavailable == len(messages) and not limit_reached,
            limit_reached=limit_reached,
        )

    async def _await_tool(
        self,
        call: ToolCallRequest,
        sink: TurnSink,
        token: CancellationToken,
    ) -> ToolResult | ToolError:
        """Dispatch in a separate task and wait in poll intervals up to the execution timeout.

        On timeout or cancellation the task keeps running in the background; its result
        is discarded.
        """
        task = asyncio.create_task(self._registry.dispatch(call.name, call.arguments))
        elapsed = 0.0

        while True:
            wait = min(self.poll_interval, self.execution_timeout - elapsed)
            if wait > 0:
                try:
                    done, _ = await asyncio.wait({task}, timeout=wait)
                except asyncio.CancelledError:
                    self._detach(task)
                    raise
                if done:
                    return task.result()
                elapsed += wait

            if token.is_cancelled:
                self._detach(task)
                token.check()

            if elapsed >= self.execution_timeout:
                logger.warning(
                    f"Tool '{call.name}' still running after {self.execution_timeout:.0f}s; no longer awaited",
                    tool_call_id=call.id,
                )
                self._detach(task)
                return ToolError(
                    kind=ToolErrorKind.EXECUTION,
                    tool_name=call.name,
                    message=(
                        f"Tool execution timed out after {self.execution_timeout:.0f} seconds. "
                        "The tool may still be running in the background."
                    ),
                )

            sink.emit(TOOL_PROGRESS_NOTICE.format(name=call.name, elapsed=int(elapsed)))

    def _detach(self, task: asyncio.Task[ToolResult | ToolError]) -> None:
        self._background_tools.add(task)
        task.add_done_callback(self._background_tools.discard)

    def _log_turn(
        self,
        messages: Sequence[ConversationMessage],
        model: str,
        outcome: TurnOutcome,
        plan: TurnPlan | None,
        duration: float,
    ) -> None:
        turns_total.labels(state=outcome.state.value).inc()

        user_input = ""
        if plan is not None and plan.current_index is not None:
            user_input = history_friendly_content(messages[plan.current_index].content) or ""

        logger.log_turn(
            model=model,
            state=outcome.state.value,
            user_input=user_input,
            response=outcome.final_text,
            tool_calls=outcome.tool_names,
            llm_requests=outcome.llm_requests,
            duration_ms=duration * 1000,
            is_multimodal=plan is not None and plan.kind.is_multimodal,
        )


__all__ = [
    "FINISH_REASON_TOOL_LIMIT",
    "ConversationEngine",
    "TurnOutcome",
    "TurnState",
    "tool_message_content",
    "truncate_tool_content",
]
