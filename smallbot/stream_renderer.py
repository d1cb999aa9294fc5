"""Streaming response rendering into one live, rate-limited chat message.

The renderer turns the agent's StreamEvents into transport operations:
one placeholder message that is edited as text arrives, forced edits around
tool runs, and a final edit (or a split re-delivery when the answer is too
long for a single message).
"""

import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .agent import StreamEvent, TextDelta, ToolEnd, ToolStart, TurnDone
from .errors import AgentError, TransportError
from .logger import get_logger
from .transport import EditOutcome, Transport

_log = get_logger(__name__)

__all__ = ["StreamingRenderer", "RenderState", "split_message", "tool_indicator"]

PLACEHOLDER = "..."
TRUNCATION_MARKER = "[...truncated]\n\n"

TOOL_EMOJIS = {
    "web_search": "🔍",
    "fetch_url": "🌐",
    "bash": "⚙️",
    "read_file": "📖",
    "write_file": "✏️",
    "edit_file": "✏️",
    "save_memory": "💾",
    "recall_memories": "🧠",
    "set_tone": "🎭",
}
DEFAULT_TOOL_EMOJI = "🔧"


def tool_indicator(name: str) -> str:
    return f"\n\n{TOOL_EMOJIS.get(name, DEFAULT_TOOL_EMOJI)} _{name}_..."


def split_message(text: str, limit: int) -> List[str]:
    """Cut text into ordered chunks of at most ``limit`` characters."""
    if limit <= 0:
        raise ValueError("limit must be positive")
    return [text[i:i + limit] for i in range(0, len(text), limit)]


@dataclass
class RenderState:
    message_id: Any = None
    base_text: str = ""
    tool_indicator: str = ""
    last_text: str = ""  # source text behind the last successful edit
    last_rendered: Optional[str] = None  # exactly what the transport shows
    last_edit_at: float = float("-inf")
    edits: int = 0


class StreamingRenderer:
    """Reconcile one request's StreamEvents into a single live message.

    Text updates pass a dual gate: enough time since the last edit AND
    enough change in size. Tool start/end and the final answer bypass the
    gate. Identical text is never re-sent. A failed edit is logged and
    skipped; only creating the placeholder or sending overflow chunks can
    raise.
    """

    def __init__(self, transport: Transport, throttle_interval: Optional[float] = None,
                 min_chars_change: int = 20, message_limit: Optional[int] = None):
        self.transport = transport
        self.throttle_interval = (transport.min_edit_interval
                                  if throttle_interval is None else throttle_interval)
        self.min_chars_change = min_chars_change
        self.message_limit = message_limit or transport.message_limit
        self.state = RenderState()
        self.final_text: Optional[str] = None
        self.overflow_ids: List[Any] = []

    def render(self, events: Iterable[StreamEvent]) -> str:
        """Consume the whole event stream and return the final answer text."""
        for event in events:
            self.handle(event)
        if self.final_text is None:
            raise AgentError("Stream ended without a final answer")
        return self.final_text

    def handle(self, event: StreamEvent) -> None:
        if self.state.message_id is None and self.final_text is None:
            self._start()

        if isinstance(event, TextDelta):
            self.state.base_text = event.accumulated
            self._update(self._compose())
        elif isinstance(event, ToolStart):
            self.state.tool_indicator = tool_indicator(event.name)
            self._update(self._compose(), force=True)
        elif isinstance(event, ToolEnd):
            self.state.tool_indicator = ""
            self._update(self._compose(), force=True)
        elif isinstance(event, TurnDone):
            self.state.base_text = event.text
            self.state.tool_indicator = ""
            self._finish(event.text)
            self.final_text = event.text

    # ── Helpers ──────────────────────────────────

    def _start(self) -> None:
        self.state.message_id = self.transport.create_message(PLACEHOLDER)
        self.state.last_rendered = PLACEHOLDER
        _log.debug("Placeholder message %s created", self.state.message_id)

    def _compose(self) -> str:
        if not self.state.base_text:
            return self.state.tool_indicator.lstrip("\n")
        return self.state.base_text + self.state.tool_indicator

    def _display(self, text: str) -> str:
        if not text:
            return PLACEHOLDER
        if len(text) > self.message_limit:
            # Keep the newest output visible while streaming.
            keep = self.message_limit - len(TRUNCATION_MARKER)
            if keep < 1:
                return text[-self.message_limit:]
            return TRUNCATION_MARKER + text[-keep:]
        return text

    def _update(self, text: str, force: bool = False) -> bool:
        state = self.state
        display = self._display(text)
        if display == state.last_rendered:
            return False

        now = time.monotonic()
        if not force:
            if now - state.last_edit_at < self.throttle_interval:
                return False
            if abs(len(text) - len(state.last_text)) < self.min_chars_change:
                return False

        try:
            outcome = self.transport.edit_message(state.message_id, display)
        except TransportError as e:
            _log.warning("Edit failed: %s", e)
            return False

        if outcome is EditOutcome.OK:
            state.edits += 1
        state.last_rendered = display
        state.last_text = text
        state.last_edit_at = now
        return True

    def _finish(self, text: str) -> None:
        if len(text) <= self.message_limit:
            self._update(text, force=True)
            return
        self._deliver_overflow(text)

    def _deliver_overflow(self, text: str) -> None:
        chunks = split_message(text, self.message_limit)
        _log.info("Response overflow: %d chars, sending %d messages", len(text), len(chunks))
        try:
            if not self.transport.delete_message(self.state.message_id):
                _log.debug("Could not delete placeholder %s", self.state.message_id)
        except TransportError as e:
            _log.debug("Could not delete placeholder %s: %s", self.state.message_id, e)
        self.state.message_id = None
        self.state.last_rendered = None

        for chunk in chunks:
            self.overflow_ids.append(self.transport.send_message(chunk))
