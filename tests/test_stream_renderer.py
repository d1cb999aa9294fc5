"""Tests for the live-message renderer: gating, tool indicators, overflow."""

import math

import pytest

from conftest import FakeTransport
from smallbot.agent import TextDelta, ToolEnd, ToolStart, TurnDone
from smallbot.errors import AgentError, TransportError
from smallbot.stream_renderer import (
    PLACEHOLDER,
    TRUNCATION_MARKER,
    StreamingRenderer,
    split_message,
    tool_indicator,
)


def _delta(text, previous=""):
    return TextDelta(delta=text[len(previous):], accumulated=text)


def _renderer(transport, **kwargs):
    kwargs.setdefault("throttle_interval", 0.5)
    kwargs.setdefault("min_chars_change", 20)
    return StreamingRenderer(transport, **kwargs)


def test_short_answer_creates_placeholder_then_one_edit(transport, clock):
    renderer = _renderer(transport)

    final = renderer.render([_delta("4"), TurnDone(text="4")])

    assert final == "4"
    assert transport.ops == [("create", 1, PLACEHOLDER), ("edit", 1, "4")]
    assert transport.messages == {1: "4"}


def test_placeholder_is_created_on_first_event_of_any_kind(transport, clock):
    renderer = _renderer(transport)

    renderer.handle(ToolStart(call_id="c1", name="bash"))

    assert transport.ops[0] == ("create", 1, PLACEHOLDER)


def test_identical_text_is_never_resent(transport, clock):
    text = "x" * 30
    renderer = _renderer(transport)

    renderer.render([_delta(text), TurnDone(text=text)])

    assert transport.texts("edit") == [text]
    assert transport.texts("unchanged") == []


def test_text_edits_need_both_elapsed_time_and_size_change(transport, clock):
    renderer = _renderer(transport)
    a25, a30, a50, a80 = ("a" * n for n in (25, 30, 50, 80))

    renderer.handle(_delta(a25))          # first edit: no prior edit time
    clock.advance(1.0)
    renderer.handle(_delta(a30, a25))     # enough time, only 5 chars more
    renderer.handle(_delta(a50, a30))     # enough time and 25 chars more
    renderer.handle(_delta(a80, a50))     # 30 chars more but no time passed

    assert transport.texts("edit") == [a25, a50]
    assert renderer.state.edits == 2


def test_small_deltas_are_batched_until_final_edit(transport, clock):
    renderer = _renderer(transport)
    text = ""
    events = []
    for word in ["The ", "answer ", "is ", "forty ", "two."]:
        previous, text = text, text + word
        events.append(_delta(text, previous))
    events.append(TurnDone(text=text))

    renderer.render(events)

    # Only the 20-char mark passes the size gate; the final edit is forced.
    assert transport.texts("edit") == ["The answer is forty ", text]


def test_tool_indicator_is_forced_and_removed_after_tool_end(transport, clock):
    renderer = _renderer(transport)

    renderer.render([
        _delta("Let me check"),
        ToolStart(call_id="c1", name="web_search"),
        ToolEnd(call_id="c1", name="web_search"),
        _delta("It is sunny"),
        TurnDone(text="It is sunny"),
    ])

    edits = transport.texts("edit")
    assert edits[0] == "Let me check" + tool_indicator("web_search")
    assert edits[1] == "Let me check"
    assert edits[-1] == "It is sunny"
    assert "web_search" not in transport.messages[1]


def test_tool_start_before_any_text_shows_bare_indicator(transport, clock):
    renderer = _renderer(transport)

    renderer.handle(ToolStart(call_id="c1", name="bash"))
    renderer.handle(ToolEnd(call_id="c1", name="bash"))

    edits = transport.texts("edit")
    assert edits[0] == tool_indicator("bash").lstrip("\n")
    assert edits[1] == PLACEHOLDER
    assert transport.messages[1] == PLACEHOLDER


def test_unknown_tool_name_gets_default_indicator():
    assert tool_indicator("mystery").startswith("\n\n🔧 _mystery_")


def test_long_stream_shows_truncated_tail(clock):
    transport = FakeTransport(message_limit=100)
    renderer = _renderer(transport)
    text = "".join(str(i % 10) for i in range(150))

    renderer.handle(_delta(text))

    shown = transport.texts("edit")[0]
    assert shown.startswith(TRUNCATION_MARKER)
    assert len(shown) == 100
    assert shown.endswith(text[-20:])


def test_tiny_limit_shows_bare_tail_within_limit(clock):
    transport = FakeTransport(message_limit=16)
    renderer = _renderer(transport, message_limit=len(TRUNCATION_MARKER))
    text = "".join(str(i % 10) for i in range(116))

    renderer.handle(_delta(text))

    shown = transport.texts("edit")[0]
    assert shown == text[-len(TRUNCATION_MARKER):]
    assert len(shown) <= renderer.message_limit


def test_overflow_replaces_placeholder_with_chunks(clock):
    transport = FakeTransport(message_limit=100)
    renderer = _renderer(transport)
    text = "y" * 250

    final = renderer.render([_delta(text[:50]), TurnDone(text=text)])

    assert final == text
    sent = transport.texts("send")
    assert len(sent) == math.ceil(250 / 100)
    assert "".join(sent) == text
    assert all(len(chunk) <= 100 for chunk in sent)
    assert ("delete", 1, None) in transport.ops
    assert renderer.overflow_ids == [2, 3, 4]


def test_overflow_still_sends_when_delete_fails(clock):
    transport = FakeTransport(message_limit=100, fail_delete=True)
    renderer = _renderer(transport)
    text = "z" * 201

    renderer.render([TurnDone(text=text)])

    assert len(transport.texts("send")) == 3
    assert "".join(transport.texts("send")) == text


def test_answer_exactly_at_limit_is_a_single_edit(clock):
    transport = FakeTransport(message_limit=100)
    text = "q" * 100

    _renderer(transport).render([TurnDone(text=text)])

    assert transport.texts("send") == []
    assert transport.texts("edit") == [text]


def test_edit_failures_are_swallowed(clock):
    transport = FakeTransport(fail_edits=True)
    renderer = _renderer(transport)

    final = renderer.render([_delta("a" * 40), TurnDone(text="a" * 40)])

    assert final == "a" * 40
    assert len(transport.texts("edit_failed")) == 2
    assert renderer.state.edits == 0


def test_unchanged_outcome_is_not_an_error(clock):
    transport = FakeTransport(always_unchanged=True)
    renderer = _renderer(transport)

    final = renderer.render([_delta("b" * 40), TurnDone(text="b" * 41)])

    assert final == "b" * 41
    assert transport.texts("unchanged") == ["b" * 40, "b" * 41]
    assert renderer.state.edits == 0


def test_placeholder_failure_raises(clock):
    transport = FakeTransport(fail_create=True)

    with pytest.raises(TransportError):
        _renderer(transport).render([TurnDone(text="hi")])


def test_stream_without_turn_done_is_an_error(transport, clock):
    with pytest.raises(AgentError):
        _renderer(transport).render([_delta("partial")])


def test_throttle_defaults_to_transport_interval():
    transport = FakeTransport()
    transport.min_edit_interval = 1.5

    renderer = StreamingRenderer(transport)

    assert renderer.throttle_interval == 1.5
    assert renderer.message_limit == transport.message_limit


def test_split_message_chunks_in_order():
    assert split_message("abcdefg", 3) == ["abc", "def", "g"]
    assert split_message("", 3) == []
    with pytest.raises(ValueError):
        split_message("abc", 0)


def test_small_quick_deltas_only_get_the_forced_final_edit(transport, clock):
    renderer = _renderer(transport)

    renderer.render([_delta("Hel"), _delta("Hello", "Hel"), TurnDone(text="Hello")])

    assert transport.texts("edit") == ["Hello"]
