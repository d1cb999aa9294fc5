import io

import pytest
import requests
from rich.console import Console

import smallbot.transport as transport_module
from smallbot.errors import TransportError
from smallbot.transport import ConsoleTransport, EditOutcome, TelegramClient


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload


class FakeSession:
    """Stands in for requests.Session; replies are queued per test."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append((url, json, timeout))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _ok(result):
    return FakeResponse({"ok": True, "result": result})


def _fail(description, **parameters):
    payload = {"ok": False, "description": description}
    if parameters:
        payload["parameters"] = parameters
    return FakeResponse(payload, status_code=400)


def _chat(*replies):
    session = FakeSession(*replies)
    client = TelegramClient("123:abc", session=session)
    return client.for_chat(42), session


def test_send_message_posts_to_bot_api():
    chat, session = _chat(_ok({"message_id": 9}))

    assert chat.send_message("hello") == 9
    url, body, _ = session.requests[0]
    assert url == "https://api.telegram.org/bot123:abc/sendMessage"
    assert body == {"chat_id": 42, "text": "hello"}


def test_not_modified_edit_is_unchanged():
    chat, _ = _chat(_ok(True), _fail("Bad Request: message is not modified: specified new "
                                     "message content is the same"))

    assert chat.edit_message(9, "a") is EditOutcome.OK
    assert chat.edit_message(9, "a") is EditOutcome.UNCHANGED


def test_other_edit_failures_raise():
    chat, _ = _chat(_fail("Bad Request: message to edit not found"))

    with pytest.raises(TransportError, match="editMessageText failed"):
        chat.edit_message(9, "a")


def test_rate_limit_is_retried_once(monkeypatch):
    slept = []
    monkeypatch.setattr(transport_module.time, "sleep", slept.append)
    chat, session = _chat(_fail("Too Many Requests", retry_after=2), _ok({"message_id": 3}))

    assert chat.send_message("hi") == 3
    assert slept == [2]
    assert len(session.requests) == 2


def test_long_rate_limit_is_not_waited_out(monkeypatch):
    monkeypatch.setattr(transport_module.time, "sleep", lambda _s: pytest.fail("should not sleep"))
    chat, _ = _chat(_fail("Too Many Requests", retry_after=60))

    with pytest.raises(TransportError):
        chat.send_message("hi")


def test_network_errors_become_transport_errors():
    chat, _ = _chat(requests.ConnectionError("dns"))

    with pytest.raises(TransportError, match="ConnectionError"):
        chat.send_message("hi")


def test_delete_failure_returns_false_and_typing_never_raises():
    chat, _ = _chat(_fail("Bad Request: message can't be deleted"), requests.Timeout("slow"))

    assert chat.delete_message(9) is False
    chat.send_typing()


def test_get_updates_passes_offset_and_long_poll_timeout():
    session = FakeSession(_ok([{"update_id": 5}]))
    client = TelegramClient("t", session=session)

    assert client.get_updates(offset=5, timeout=20) == [{"update_id": 5}]
    _, body, timeout = session.requests[0]
    assert body["offset"] == 5
    assert body["timeout"] == 20
    assert timeout == 30


def test_client_requires_token():
    with pytest.raises(ValueError):
        TelegramClient("")


def test_console_transport_edits_live_message():
    console = Console(file=io.StringIO(), force_terminal=False, width=80)
    chat = ConsoleTransport(console)

    message_id = chat.create_message("...")
    assert chat.edit_message(message_id, "partial") is EditOutcome.OK
    assert chat.edit_message(message_id, "partial") is EditOutcome.UNCHANGED
    assert chat.edit_message(message_id, "final answer") is EditOutcome.OK
    chat.close()

    assert "final answer" in console.file.getvalue()
    with pytest.raises(TransportError):
        chat.edit_message(message_id, "late")


def test_console_transport_send_and_delete():
    console = Console(file=io.StringIO(), force_terminal=False, width=80)
    chat = ConsoleTransport(console)

    placeholder = chat.create_message("...")
    assert chat.delete_message(placeholder) is True
    assert chat.delete_message(placeholder) is False
    chat.send_message("chunk one")

    assert "chunk one" in console.file.getvalue()
