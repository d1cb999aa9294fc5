"""Chat front-end: auth, commands, and one request → one streamed answer."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from .agent import StreamEvent, TurnDone, TurnLoop
from .config import Config
from .conversation import Message
from .errors import AgentError, TransportError
from .logger import get_logger
from .prompts import build_system_prompt
from .sessions import SessionStore
from .stream_renderer import StreamingRenderer, split_message
from .tools.memory import MemoryStore, create_memory_tools, create_tone_tools
from .tools.registry import Tool
from .transport import TelegramClient, Transport

_log = get_logger(__name__)

__all__ = ["ChatBot", "TypingPulse"]

TYPING_REFRESH_SECONDS = 4.0
SWEEP_INTERVAL_SECONDS = 60.0


class TypingPulse:
    """Keep the transport's typing indicator alive while a request runs."""

    def __init__(self, transport: Transport, interval: float = TYPING_REFRESH_SECONDS):
        self.transport = transport
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.transport.send_typing()

    def __enter__(self) -> "TypingPulse":
        self.transport.send_typing()
        self._thread = threading.Thread(target=self._run, name="typing", daemon=True)
        self._thread.start()
        return self

    def __exit__(self, *exc) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)


class ChatBot:
    def __init__(self, config: Config, loop: TurnLoop, sessions: SessionStore,
                 memory: MemoryStore, prompts_path: Optional[Path] = None):
        self.config = config
        self.loop = loop
        self.sessions = sessions
        self.memory = memory
        self.prompts_path = prompts_path
        self._stop = threading.Event()

    # ── Request handling ─────────────────────────

    def is_allowed(self, user_id: Optional[int]) -> bool:
        return user_id is not None and user_id in self.config.allowed_user_ids

    def handle_text(self, user_id: Optional[int], text: str, transport: Transport) -> Optional[str]:
        """Handle one incoming text message; returns the answer when one was produced."""
        if not self.is_allowed(user_id):
            _log.warning("Rejected message from user %s", user_id)
            transport.send_message("Unauthorized.")
            return None

        _log.info('Received from user %s: "%s"', user_id, text[:100])
        command = text.split()[0].split("@")[0].lower() if text.strip() else ""
        if command == "/clear":
            self.sessions.clear(user_id)
            transport.send_message("Session cleared.")
            return None
        if command == "/model":
            self._handle_model_command(text, transport)
            return None

        try:
            return self._respond(user_id, text, transport)
        except Exception as e:
            _log.error("Error for user %s: %s", user_id, e, exc_info=True)
            try:
                transport.send_message(f"Error: {e}")
            except TransportError as send_error:
                _log.error("Could not report error to user %s: %s", user_id, send_error)
            return None

    def _handle_model_command(self, text: str, transport: Transport) -> None:
        parts = text.split()[1:]
        llm = self.loop.llm
        if len(parts) < 2:
            transport.send_message(
                f"Current: {llm.provider}/{llm.model}\nUsage: /model <provider> <model_id>")
            return
        llm.set_model(parts[0], parts[1])
        transport.send_message(f"Model set to {parts[0]}/{parts[1]}")

    def request_tools(self, user_id: int) -> List[Tool]:
        return create_memory_tools(self.memory, user_id) + create_tone_tools(self.memory)

    def system_prompt(self, user_id: int) -> str:
        return build_system_prompt(
            self.memory.load_tone(), self.memory.load_memories(user_id),
            self.config.timezone, self.prompts_path,
        )

    def _respond(self, user_id: int, text: str, transport: Transport) -> str:
        session = self.sessions.get(user_id)
        with session.lock:
            session.conversation.append(Message.user(text))
            history = session.conversation.messages
            tools = self.request_tools(user_id)
            system = self.system_prompt(user_id)
            _log.info("Starting %s agent for user %s, messages: %d",
                      "streaming" if self.config.streaming else "blocking",
                      user_id, len(history))

            with TypingPulse(transport):
                if self.config.streaming:
                    done = self._run_streaming(history, system, tools, transport)
                else:
                    done = self.loop.complete(history, system, tools)
                    self._send_chunked(done.text, transport)

            if not self.sessions.is_live(session):
                _log.info("Session for user %s was reset mid-request; dropping result", user_id)
                return done.text
            session.conversation.extend(done.messages)
            session.touch()
            _log.info("Reply complete for user %s, length: %d", user_id, len(done.text))
            return done.text

    def _run_streaming(self, history: List[Message], system: str, tools: Iterable[Tool],
                       transport: Transport) -> TurnDone:
        captured: List[TurnDone] = []

        def _tap(events: Iterable[StreamEvent]) -> Iterator[StreamEvent]:
            for event in events:
                if isinstance(event, TurnDone):
                    captured.append(event)
                yield event

        renderer = StreamingRenderer(
            transport,
            throttle_interval=self.config.throttle_interval,
            min_chars_change=self.config.min_chars_change,
            message_limit=min(self.config.message_limit, transport.message_limit),
        )
        renderer.render(_tap(self.loop.run_streaming(history, system, tools)))
        if not captured:
            raise AgentError("Stream ended without a final answer")
        return captured[-1]

    def _send_chunked(self, text: str, transport: Transport) -> None:
        limit = min(self.config.message_limit, transport.message_limit)
        chunks = split_message(text, limit) or ["(no response)"]
        _log.debug("Sending %d message(s)", len(chunks))
        for chunk in chunks:
            transport.send_message(chunk)

    # ── Telegram polling ─────────────────────────

    def stop(self) -> None:
        self._stop.set()

    def start_idle_sweeper(self, interval: float = SWEEP_INTERVAL_SECONDS) -> Optional[threading.Thread]:
        max_idle = self.config.session_idle_timeout
        if max_idle <= 0:
            return None

        def _sweep():
            while not self._stop.wait(interval):
                self.sessions.evict_idle(max_idle)

        thread = threading.Thread(target=_sweep, name="session-sweeper", daemon=True)
        thread.start()
        return thread

    def poll_forever(self, client: TelegramClient, max_workers: int = 8) -> None:
        """Long-poll Telegram and dispatch each message to a worker thread."""
        offset: Optional[int] = None
        _log.info("Polling for updates...")
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chat") as pool:
            while not self._stop.is_set():
                try:
                    updates = client.get_updates(offset)
                except TransportError as e:
                    _log.warning("getUpdates failed: %s", e)
                    time.sleep(3)
                    continue
                for update in updates:
                    offset = update["update_id"] + 1
                    message = update.get("message") or {}
                    text = message.get("text")
                    if not text:
                        continue
                    user_id = (message.get("from") or {}).get("id")
                    chat = client.for_chat(message["chat"]["id"])
                    pool.submit(self.handle_text, user_id, text, chat)
