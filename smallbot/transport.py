"""Chat transports: the send/edit/delete/typing surface the renderer drives.

``TelegramTransport`` talks to the Telegram Bot API with ``requests``;
``ConsoleTransport`` renders the same operations in a terminal with Rich.
"""

import enum
import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.text import Text

from .errors import TransportError
from .logger import get_logger

_log = get_logger(__name__)

__all__ = ["EditOutcome", "Transport", "TelegramClient", "TelegramTransport", "ConsoleTransport"]


class EditOutcome(enum.Enum):
    OK = "ok"
    UNCHANGED = "unchanged"


class Transport(ABC):
    """One conversation's view of a chat system."""

    message_limit: int = 4096
    min_edit_interval: float = 0.5

    @abstractmethod
    def create_message(self, text: str) -> Any:
        """Post the live placeholder message and return its id."""

    @abstractmethod
    def edit_message(self, message_id: Any, text: str) -> EditOutcome:
        """Replace a message's text. Raises TransportError on failure."""

    @abstractmethod
    def send_message(self, text: str) -> Any:
        """Post a new message and return its id."""

    @abstractmethod
    def delete_message(self, message_id: Any) -> bool:
        """Best-effort delete; returns False instead of raising."""

    def send_typing(self) -> None:
        """Refresh the 'typing…' liveness indicator, if the chat has one."""


# ── Telegram ───────────────────────────────────────

class TelegramClient:
    """Minimal Bot API client shared by every chat the bot talks to."""

    API_BASE = "https://api.telegram.org"
    TIMEOUT = 30
    MAX_RETRY_AFTER = 10
    _NOT_MODIFIED = "message is not modified"

    def __init__(self, token: str, session: Optional[requests.Session] = None,
                 api_base: Optional[str] = None):
        if not token:
            raise ValueError("Telegram bot token is required")
        self._token = token
        self._session = session or requests.Session()
        self._base = (api_base or self.API_BASE).rstrip("/")

    def call(self, method: str, *, timeout: Optional[float] = None, **params) -> Any:
        """Invoke a Bot API method, retrying once when Telegram asks us to wait."""
        url = f"{self._base}/bot{self._token}/{method}"
        for attempt in range(2):
            try:
                resp = self._session.post(url, json=params, timeout=timeout or self.TIMEOUT)
                payload = resp.json()
            except (requests.RequestException, ValueError) as e:
                raise TransportError(method, f"{type(e).__name__}: {e}")

            if payload.get("ok"):
                return payload.get("result")

            description = str(payload.get("description", f"HTTP {resp.status_code}"))
            retry_after = (payload.get("parameters") or {}).get("retry_after")
            if attempt == 0 and retry_after is not None and retry_after <= self.MAX_RETRY_AFTER:
                _log.info("%s rate limited, retrying in %ss", method, retry_after)
                time.sleep(retry_after)
                continue
            raise TransportError(method, description)
        raise TransportError(method, "rate limited")

    @classmethod
    def is_not_modified(cls, error: TransportError) -> bool:
        return cls._NOT_MODIFIED in str(error).lower()

    def get_updates(self, offset: Optional[int] = None, timeout: int = 25) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            params["offset"] = offset
        return self.call("getUpdates", timeout=timeout + 10, **params) or []

    def for_chat(self, chat_id: int) -> "TelegramTransport":
        return TelegramTransport(self, chat_id)


class TelegramTransport(Transport):
    message_limit = 4096
    min_edit_interval = 0.5

    def __init__(self, client: TelegramClient, chat_id: int):
        self.client = client
        self.chat_id = chat_id

    def create_message(self, text: str) -> int:
        return self.send_message(text)

    def send_message(self, text: str) -> int:
        result = self.client.call("sendMessage", chat_id=self.chat_id, text=text)
        return result["message_id"]

    def edit_message(self, message_id: int, text: str) -> EditOutcome:
        try:
            self.client.call("editMessageText", chat_id=self.chat_id,
                             message_id=message_id, text=text)
        except TransportError as e:
            if TelegramClient.is_not_modified(e):
                return EditOutcome.UNCHANGED
            raise
        return EditOutcome.OK

    def delete_message(self, message_id: int) -> bool:
        try:
            return bool(self.client.call("deleteMessage", chat_id=self.chat_id,
                                         message_id=message_id))
        except TransportError as e:
            _log.debug("Delete of %s failed: %s", message_id, e)
            return False

    def send_typing(self) -> None:
        try:
            self.client.call("sendChatAction", chat_id=self.chat_id, action="typing")
        except TransportError as e:
            _log.debug("Typing indicator failed: %s", e)


# ── Console ────────────────────────────────────────

class ConsoleTransport(Transport):
    """Terminal stand-in for a chat: live messages are Rich Live regions."""

    message_limit = 4096
    min_edit_interval = 0.1

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._ids = itertools.count(1)
        self._live: Dict[int, Live] = {}
        self._texts: Dict[int, str] = {}

    def create_message(self, text: str) -> int:
        message_id = next(self._ids)
        live = Live(Text(text), console=self.console, auto_refresh=False, transient=True)
        live.start()
        self._live[message_id] = live
        self._texts[message_id] = text
        return message_id

    def edit_message(self, message_id: int, text: str) -> EditOutcome:
        live = self._live.get(message_id)
        if live is None:
            raise TransportError("edit_message", f"message {message_id} is not live")
        if self._texts.get(message_id) == text:
            return EditOutcome.UNCHANGED
        live.update(Markdown(text) if text.strip() else Text(text))
        live.refresh()
        self._texts[message_id] = text
        return EditOutcome.OK

    def send_message(self, text: str) -> int:
        message_id = next(self._ids)
        self.console.print(Markdown(text))
        self._texts[message_id] = text
        return message_id

    def delete_message(self, message_id: int) -> bool:
        live = self._live.pop(message_id, None)
        self._texts.pop(message_id, None)
        if live is None:
            return False
        live.stop()
        return True

    def close(self) -> None:
        """Stop live regions, leaving their last text printed."""
        for message_id, live in list(self._live.items()):
            live.stop()
            text = self._texts.get(message_id, "")
            if text.strip():
                self.console.print(Markdown(text))
        self._live.clear()

    def send_typing(self) -> None:
        pass
