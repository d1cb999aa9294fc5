"""Shared fixtures for smallbot tests."""

import pytest
from pydantic import BaseModel, Field

import smallbot.stream_renderer as renderer_module
from smallbot.errors import TransportError
from smallbot.llm import LLMResponse
from smallbot.tools.registry import tool
from smallbot.transport import EditOutcome, Transport


def text_turn(*chunks):
    """One model turn that streams ``chunks`` and requests no tools."""
    events = [("text", chunk) for chunk in chunks]
    events.append(("done", LLMResponse(content="".join(chunks) or None)))
    return events


def tool_turn(*calls, text=""):
    """One model turn that requests ``calls``, optionally after some text."""
    events = [("text", text)] if text else []
    events.extend(("tool_call", call) for call in calls)
    events.append(("done", LLMResponse(content=text or None, tool_calls=list(calls))))
    return events


class ScriptedLLM:
    """Replays one scripted turn per ``chat_stream`` call and records its inputs."""

    def __init__(self, turns, on_call=None):
        self.turns = list(turns)
        self.calls = []
        self.on_call = on_call
        self.provider = "test"
        self.model = "scripted"

    @property
    def model_id(self):
        return f"{self.provider}/{self.model}"

    def set_model(self, provider, model):
        self.provider = provider
        self.model = model

    def chat_stream(self, messages, tools=None):
        self.calls.append({"messages": messages, "tools": tools})
        if self.on_call is not None:
            self.on_call(len(self.calls))
        if not self.turns:
            raise AssertionError("no scripted turn left")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        yield from turn


class FakeTransport(Transport):
    """Records every operation; failure modes are switched on per test."""

    min_edit_interval = 0.0

    def __init__(self, message_limit=4096, fail_create=False, fail_edits=False,
                 fail_delete=False, always_unchanged=False):
        self.message_limit = message_limit
        self.fail_create = fail_create
        self.fail_edits = fail_edits
        self.fail_delete = fail_delete
        self.always_unchanged = always_unchanged
        self.ops = []
        self.messages = {}
        self.typing = 0
        self._next_id = 0

    def _new(self, text):
        self._next_id += 1
        self.messages[self._next_id] = text
        return self._next_id

    def create_message(self, text):
        if self.fail_create:
            raise TransportError("create_message", "chat unavailable")
        message_id = self._new(text)
        self.ops.append(("create", message_id, text))
        return message_id

    def edit_message(self, message_id, text):
        if self.fail_edits:
            self.ops.append(("edit_failed", message_id, text))
            raise TransportError("edit_message", "Bad Request")
        if self.always_unchanged or self.messages.get(message_id) == text:
            self.ops.append(("unchanged", message_id, text))
            return EditOutcome.UNCHANGED
        self.messages[message_id] = text
        self.ops.append(("edit", message_id, text))
        return EditOutcome.OK

    def send_message(self, text):
        message_id = self._new(text)
        self.ops.append(("send", message_id, text))
        return message_id

    def delete_message(self, message_id):
        if self.fail_delete:
            self.ops.append(("delete_failed", message_id, None))
            return False
        self.messages.pop(message_id, None)
        self.ops.append(("delete", message_id, None))
        return True

    def send_typing(self):
        self.typing += 1

    def texts(self, kind):
        return [text for op, _, text in self.ops if op == kind]


class Clock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class EchoArgs(BaseModel):
    message: str = Field(description="Text to echo back")


@tool("echo", "Echo the message back", EchoArgs)
def echo_tool(args):
    return args.message


@pytest.fixture
def clock(monkeypatch):
    """Freeze the renderer's monotonic clock; advance it by hand."""
    fake = Clock()
    monkeypatch.setattr(renderer_module.time, "monotonic", fake)
    return fake


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def echo():
    return echo_tool
