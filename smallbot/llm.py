"""LLM adapter via litellm."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional, Tuple

import litellm

from .conversation import ToolCall
from .logger import get_logger

litellm.suppress_debug_info = True

_log = get_logger(__name__)

__all__ = ["LLMAdapter", "LLMResponse", "ToolCall"]


@dataclass
class LLMResponse:
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict] = None


def _parse_arguments(raw: str) -> Tuple[Dict[str, Any], Optional[str]]:
    """Decode a tool call's argument string into ``(arguments, error)``."""
    if not raw or not raw.strip():
        return {}, None
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as e:
        return {}, f"arguments are not valid JSON ({e.msg}): {raw[:200]}"
    if not isinstance(args, dict):
        return {}, f"arguments must be a JSON object, got {type(args).__name__}"
    return args, None


class LLMAdapter:
    """Streaming LLM interface. Passes api_key/api_base directly to litellm,
    avoiding env-var pollution when switching between providers."""

    def __init__(self, provider: str, model: str, temperature: float = 0.0,
                 max_tokens: int = 4096, timeout: Optional[int] = None,
                 api_base: Optional[str] = None, api_key: Optional[str] = None):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.api_base = api_base
        self.api_key = api_key

    @property
    def model_id(self) -> str:
        """The litellm model string, e.g. ``anthropic/claude-sonnet-4-5``."""
        if "/" in self.model or not self.provider:
            return self.model
        return f"{self.provider}/{self.model}"

    def set_model(self, provider: str, model: str) -> None:
        _log.info("Switching model to %s/%s", provider, model)
        self.provider = provider
        self.model = model

    def _build_kwargs(self, messages: List[Dict[str, Any]],
                      tools: Optional[List[Dict]]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model_id, "messages": messages,
            "temperature": self.temperature, "max_tokens": self.max_tokens,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.timeout:
            kwargs["timeout"] = self.timeout
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    def chat_stream(self, messages: List[Dict[str, Any]],
                    tools: Optional[List[Dict]] = None
                    ) -> Generator[Tuple[str, Any], None, None]:
        """Streaming chat. Yields (event_type, data) tuples.

        Event types:
          "text"      str, incremental text content
          "tool_call" ToolCall whose arguments are complete
          "done"      LLMResponse, the final complete response

        Errors are not retried; they surface as ConnectionError.
        """
        kwargs = self._build_kwargs(messages, tools)
        try:
            response_stream = litellm.completion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise ConnectionError(f"Auth failed. Check API key.\n{e}")
        except litellm.exceptions.APIConnectionError as e:
            raise ConnectionError(f"Cannot connect: model={self.model_id}, base={self.api_base or 'default'}\n{e}")
        except Exception as e:
            raise ConnectionError(f"LLM error: {type(e).__name__}: {e}")

        full_content = ""
        tc_data: Dict[int, Dict[str, str]] = {}
        emitted: List[ToolCall] = []
        open_index: Optional[int] = None
        finished: set = set()
        usage = None

        def _finish(idx: int) -> ToolCall:
            finished.add(idx)
            tc = tc_data[idx]
            arguments, error = _parse_arguments(tc["args"])
            if error:
                _log.warning("Tool call %s (%s): %s", tc["id"], tc["name"], error)
            call = ToolCall(id=tc["id"], name=tc["name"], arguments=arguments, parse_error=error)
            emitted.append(call)
            return call

        try:
            for chunk in response_stream:
                # Usage-only final chunk (some providers)
                if not chunk.choices:
                    if getattr(chunk, "usage", None):
                        usage = self._usage_dict(chunk.usage)
                    continue

                delta = chunk.choices[0].delta

                if getattr(delta, "content", None):
                    full_content += delta.content
                    yield ("text", delta.content)

                # Tool calls arrive in fragments; a call is complete once the
                # next index starts or the stream ends.
                if getattr(delta, "tool_calls", None):
                    for tc_delta in delta.tool_calls:
                        idx = tc_delta.index if tc_delta.index is not None else 0
                        if idx in finished:
                            continue
                        if open_index is not None and idx != open_index:
                            yield ("tool_call", _finish(open_index))
                        open_index = idx
                        if idx not in tc_data:
                            tc_data[idx] = {"id": "", "name": "", "args": ""}
                        if tc_delta.id:
                            tc_data[idx]["id"] = tc_delta.id
                        if tc_delta.function:
                            if tc_delta.function.name:
                                tc_data[idx]["name"] = tc_delta.function.name
                            if tc_delta.function.arguments:
                                tc_data[idx]["args"] += tc_delta.function.arguments

                if getattr(chunk, "usage", None):
                    usage = self._usage_dict(chunk.usage)
        except Exception as e:
            raise ConnectionError(f"Stream interrupted: {type(e).__name__}: {e}")

        if open_index is not None and open_index not in finished:
            yield ("tool_call", _finish(open_index))

        yield ("done", LLMResponse(
            content=full_content or None,
            tool_calls=emitted or None,
            usage=usage,
        ))

    @staticmethod
    def _usage_dict(usage) -> Dict[str, int]:
        return {"prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens}
