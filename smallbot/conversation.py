"""Conversation data model: messages, tool calls/results and per-session history."""

import base64
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

__all__ = [
    "TextPart", "BinaryPart", "ContentPart", "ToolCall", "ToolResult",
    "Message", "ConversationState",
]

USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"


@dataclass
class TextPart:
    text: str


@dataclass
class BinaryPart:
    data: bytes
    mime_type: str

    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


ContentPart = Union[TextPart, BinaryPart]


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any]
    # Set when the model's argument string could not be decoded.
    parse_error: Optional[str] = None


@dataclass
class ToolResult:
    tool_call_id: str
    tool_name: str
    content: List[ContentPart] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def error(cls, call: ToolCall, message: str) -> "ToolResult":
        return cls(tool_call_id=call.id, tool_name=call.name,
                   content=[TextPart(message)], is_error=True)

    @property
    def text(self) -> str:
        return _join_text(self.content)


def _join_text(parts: Iterable[ContentPart]) -> str:
    return "".join(p.text for p in parts if isinstance(p, TextPart))


@dataclass
class Message:
    role: str
    content: List[ContentPart] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)
    model: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    is_error: bool = False

    @classmethod
    def user(cls, text: str, attachments: Iterable[BinaryPart] = ()) -> "Message":
        parts: List[ContentPart] = [TextPart(text)] if text else []
        parts.extend(attachments)
        return cls(role=USER, content=parts)

    @classmethod
    def assistant(cls, text: str, tool_calls: Optional[List[ToolCall]] = None,
                  model: Optional[str] = None) -> "Message":
        return cls(role=ASSISTANT, content=[TextPart(text)] if text else [],
                   model=model, tool_calls=list(tool_calls or []))

    @classmethod
    def from_tool_result(cls, result: ToolResult) -> "Message":
        return cls(role=TOOL, content=list(result.content),
                   tool_call_id=result.tool_call_id, tool_name=result.tool_name,
                   is_error=result.is_error)

    @property
    def text(self) -> str:
        return _join_text(self.content)

    def to_llm(self) -> Dict[str, Any]:
        """Convert to the OpenAI-style dict litellm accepts."""
        if self.role == ASSISTANT:
            msg: Dict[str, Any] = {"role": ASSISTANT, "content": self.text or None}
            if self.tool_calls:
                msg["tool_calls"] = [
                    {"id": tc.id, "type": "function",
                     "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)}}
                    for tc in self.tool_calls
                ]
            return msg

        if self.role == TOOL:
            # Tool messages only carry text; describe attachments inline.
            chunks = []
            for part in self.content:
                if isinstance(part, TextPart):
                    chunks.append(part.text)
                else:
                    chunks.append(f"[binary: {part.mime_type}, {len(part.data)} bytes]")
            return {"role": TOOL, "tool_call_id": self.tool_call_id,
                    "content": "\n".join(chunks)}

        if all(isinstance(p, TextPart) for p in self.content):
            return {"role": self.role, "content": self.text}
        parts = []
        for part in self.content:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            else:
                parts.append({"type": "image_url", "image_url": {"url": part.data_uri()}})
        return {"role": self.role, "content": parts}


class ConversationState:
    """Ordered message history for one session.

    Append-only: messages are never edited or reordered. ``reset`` drops the
    whole sequence at once. Tool messages must answer a call made by the
    assistant message that directly precedes their contiguous block.
    """

    def __init__(self, messages: Optional[Iterable[Message]] = None):
        self._messages: List[Message] = []
        for msg in messages or ():
            self.append(msg)

    def append(self, message: Message) -> None:
        if message.role == TOOL:
            parent = self._pending_tool_parent()
            if parent is None:
                raise ValueError("Tool result without a preceding assistant tool call")
            if message.tool_call_id not in {tc.id for tc in parent.tool_calls}:
                raise ValueError(f"Tool result references unknown call id: {message.tool_call_id}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for msg in messages:
            self.append(msg)

    def reset(self) -> None:
        self._messages = []

    def _pending_tool_parent(self) -> Optional[Message]:
        for msg in reversed(self._messages):
            if msg.role == TOOL:
                continue
            if msg.role == ASSISTANT and msg.tool_calls:
                return msg
            return None
        return None

    def validate(self) -> bool:
        """True if every tool call has exactly one result, in call order."""
        i = 0
        msgs = self._messages
        while i < len(msgs):
            msg = msgs[i]
            i += 1
            if msg.role == TOOL:
                return False
            if msg.role != ASSISTANT or not msg.tool_calls:
                continue
            for call in msg.tool_calls:
                if i >= len(msgs) or msgs[i].role != TOOL or msgs[i].tool_call_id != call.id:
                    return False
                i += 1
        return True

    @property
    def messages(self) -> List[Message]:
        """A copy of the history; mutate through ``append`` only."""
        return list(self._messages)

    def to_llm_messages(self) -> List[Dict[str, Any]]:
        return [m.to_llm() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
