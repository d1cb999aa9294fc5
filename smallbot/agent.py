"""Core agent loop: model turns, sequential tool dispatch, stream events."""

import time
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Union

from .conversation import ConversationState, Message, ToolCall, ToolResult
from .errors import MaxTurnsExceeded, ToolValidationError
from .llm import LLMResponse
from .logger import get_logger
from .tools.registry import Tool, ToolRegistry

_log = get_logger(__name__)

__all__ = [
    "TurnLoop", "StreamEvent", "TextDelta", "ToolStart", "ToolEnd", "TurnDone",
    "SCHEDULED_SYSTEM_PROMPT",
]

SCHEDULED_SYSTEM_PROMPT = (
    "You are a scheduled task assistant. Execute the requested task concisely."
)


# ── Stream events ─────────────────────────────────
@dataclass(frozen=True)
class TextDelta:
    delta: str
    accumulated: str  # text of the current model turn so far


@dataclass(frozen=True)
class ToolStart:
    call_id: str
    name: str


@dataclass(frozen=True)
class ToolEnd:
    call_id: str
    name: str
    is_error: bool = False


@dataclass(frozen=True)
class TurnDone:
    text: str
    messages: List[Message] = field(default_factory=list)  # everything appended this run


StreamEvent = Union[TextDelta, ToolStart, ToolEnd, TurnDone]


class TurnLoop:
    """Drive the model until it answers without requesting tools.

    Each model turn is streamed; the finished assistant message is appended
    once, then every requested tool runs in arrival order and its result is
    appended before the next call. Tool problems become error results so the
    model can recover; model failures propagate as ``ConnectionError``.
    """

    def __init__(self, llm, tools: Optional[ToolRegistry] = None, max_turns: int = 25):
        self.llm = llm
        self.tools = tools or ToolRegistry()
        self.max_turns = max(1, int(max_turns))

    def run(self, history: Iterable[Message], system_prompt: str,
            tools: Iterable[Tool] = ()) -> str:
        return self.complete(history, system_prompt, tools).text

    def complete(self, history: Iterable[Message], system_prompt: str,
                 tools: Iterable[Tool] = ()) -> TurnDone:
        """Non-streaming run that also returns the messages it produced."""
        for event in self.run_streaming(history, system_prompt, tools):
            if isinstance(event, TurnDone):
                return event
        raise RuntimeError("Turn loop ended without a final answer")

    def run_prompt(self, prompt: str, tools: Iterable[Tool] = (),
                   system_prompt: str = SCHEDULED_SYSTEM_PROMPT) -> str:
        """Entry for scheduled jobs and plugins: one prompt, no prior history."""
        return self.run([Message.user(prompt)], system_prompt, tools)

    def run_streaming(self, history: Iterable[Message], system_prompt: str,
                      tools: Iterable[Tool] = ()) -> Iterator[StreamEvent]:
        working = ConversationState(history)
        registry = self.tools.merged(tools)
        produced: List[Message] = []
        _log.info("Starting with %d messages, %d tools", len(working), len(registry))

        for turn in range(1, self.max_turns + 1):
            _log.debug("Turn %d, context messages: %d", turn, len(working))
            messages = [{"role": "system", "content": system_prompt}] + working.to_llm_messages()

            text = ""
            streamed_calls: List[ToolCall] = []
            response: Optional[LLMResponse] = None
            for kind, data in self.llm.chat_stream(messages, tools=registry.schemas or None):
                if kind == "text":
                    text += data
                    yield TextDelta(delta=data, accumulated=text)
                elif kind == "tool_call":
                    streamed_calls.append(data)
                    _log.info("Tool call: %s", data.name)
                elif kind == "done":
                    response = data

            if response is None:
                raise ConnectionError("Stream ended without completion")

            calls = list(response.tool_calls) if response.tool_calls is not None else streamed_calls
            final_text = response.content if response.content is not None else text
            assistant = Message.assistant(final_text, calls, model=getattr(self.llm, "model_id", None))
            working.append(assistant)
            produced.append(assistant)
            _log.debug("Turn %d complete - text: %d chars, tool calls: %d",
                       turn, len(final_text), len(calls))

            if not calls:
                _log.info("No tool calls, returning response (%d chars)", len(final_text))
                yield TurnDone(text=final_text, messages=produced)
                return

            _log.info("Executing %d tool calls...", len(calls))
            for call in calls:
                yield ToolStart(call_id=call.id, name=call.name)
                result = self._execute(registry, call)
                result_msg = Message.from_tool_result(result)
                working.append(result_msg)
                produced.append(result_msg)
                yield ToolEnd(call_id=call.id, name=call.name, is_error=result.is_error)

        _log.warning("Giving up after %d turns", self.max_turns)
        raise MaxTurnsExceeded(self.max_turns)

    def _execute(self, registry: ToolRegistry, call: ToolCall) -> ToolResult:
        handler = registry.lookup(call.name)
        if handler is None:
            _log.warning("Unknown tool: %s", call.name)
            return ToolResult.error(call, f"Unknown tool: {call.name}")

        t0 = time.monotonic()
        try:
            if call.parse_error is not None:
                raise ToolValidationError(call.name, call.parse_error)
            validated = handler.validate(call.arguments)
            _log.debug("Executing tool: %s (id: %s)", call.name, call.id)
            content = handler.execute(validated)
        except ToolValidationError as e:
            _log.warning("Rejected %s call: %s", call.name, e.details)
            return ToolResult.error(call, f"Error: {e}")
        except Exception as e:
            _log.error("Tool %s failed: %s", call.name, e, exc_info=True)
            return ToolResult.error(call, f"Error: {type(e).__name__}: {e}")

        result = ToolResult(tool_call_id=call.id, tool_name=call.name, content=content)
        _log.debug("Tool %s succeeded in %.2fs, result: %d chars",
                   call.name, time.monotonic() - t0, len(result.text))
        return result
