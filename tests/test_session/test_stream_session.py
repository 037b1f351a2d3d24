"""Tests for the stream session state machine."""

import asyncio

import pytest

from conftest import DONE, STOP, frame, text_frame, thinking_frame, wait_until
from chat_client.exceptions import ProtocolError, StreamTimeoutError, TransportError
from chat_client.session.stream_session import EMPTY_RESPONSE_ERROR, SessionState, StreamSession
from chat_client.timeline.models import Message
from chat_client.timeline.store import TimelineStore


def _timeline():
    return TimelineStore([Message(role="user", content="Hello"), Message(role="assistant")])


@pytest.mark.asyncio
async def test_deltas_replace_content(api):
    timeline = _timeline()
    seen = []
    timeline.subscribe(lambda t: seen.append(t.last.content))
    api.scripts.append([text_frame("Hi"), text_frame(" there"), text_frame("!"), STOP])

    session = StreamSession(api, timeline, "conv-1", "Hello")
    assert await session.run() is SessionState.COMPLETED
    assert timeline.last.content == "Hi there!"
    assert "Hi" in seen and "Hi there" in seen
    assert not timeline.is_streaming


@pytest.mark.asyncio
async def test_done_sentinel_completes_and_ignores_rest(api):
    timeline = _timeline()
    api.scripts.append([text_frame("A") + DONE + text_frame("B")])
    session = StreamSession(api, timeline, "conv-1", "Hello")
    assert await session.run() is SessionState.COMPLETED
    assert timeline.last.content == "A"


@pytest.mark.asyncio
async def test_thinking_then_text(api):
    timeline = _timeline()
    states = []
    timeline.subscribe(lambda t: states.append((t.last.is_thinking, t.last.content)))
    api.scripts.append([thinking_frame("plan"), text_frame("Answer"), STOP])
    await StreamSession(api, timeline, "conv-1", "Hello").run()
    assert (True, "") in states
    assert timeline.last.thinking == "plan"
    assert timeline.last.is_thinking is False
    assert timeline.last.content == "Answer"


@pytest.mark.asyncio
async def test_search_status_citations_and_document(api):
    timeline = _timeline()
    source = {"url": "https://a.example", "title": "A"}
    api.scripts.append([
        frame({"type": "status", "message": "Searching the web"}),
        frame({"type": "search_sources", "query": "q", "sources": [source]}),
        frame({"type": "search_sources", "query": "q", "sources": [source]}),
        frame({"type": "document_created", "document": {"id": "d1", "title": "Doc"}}),
        frame({"type": "thinking_summary", "summary": "Looked things up"}),
        text_frame("Done."),
        STOP,
    ])
    await StreamSession(api, timeline, "conv-1", "Hello").run()
    msg = timeline.last
    assert [c.url for c in msg.citations] == ["https://a.example"]
    assert len(msg.search_logs) == 1
    assert msg.document.id == "d1"
    assert msg.thinking_summary == "Looked things up"
    assert msg.search_status is None


@pytest.mark.asyncio
async def test_error_frame_overrides_partial_content(api):
    timeline = _timeline()
    api.scripts.append([
        text_frame("Par"),
        text_frame("tial"),
        frame({"type": "error", "error": "rate limited"}),
        text_frame(" more"),
    ])
    session = StreamSession(api, timeline, "conv-1", "Hello")
    assert await session.run() is SessionState.FAILED
    assert timeline.last.content == "Error: rate limited"
    assert isinstance(session.error, ProtocolError)
    assert str(session.error) == "rate limited"


@pytest.mark.asyncio
async def test_non_success_response_fails_before_streaming(api):
    timeline = _timeline()
    api.scripts.append(TransportError("Server busy", 503))
    session = StreamSession(api, timeline, "conv-1", "Hello")
    assert await session.run() is SessionState.FAILED
    assert timeline.last.content == "Error: Server busy"


@pytest.mark.asyncio
async def test_transport_error_mid_stream(api):
    timeline = _timeline()
    api.scripts.append([text_frame("Hal"), ConnectionResetError("reset by peer")])
    session = StreamSession(api, timeline, "conv-1", "Hello")
    assert await session.run() is SessionState.FAILED
    assert timeline.last.content == "Error: reset by peer"


@pytest.mark.asyncio
async def test_eof_without_terminal_frame(api):
    timeline = _timeline()
    api.scripts.append([text_frame("Complete answer")])
    assert await StreamSession(api, timeline, "c", "m").run() is SessionState.COMPLETED
    assert timeline.last.content == "Complete answer"


@pytest.mark.asyncio
async def test_eof_without_content_is_an_error(api):
    timeline = _timeline()
    api.scripts.append([frame({"type": "message_stop"})])
    assert await StreamSession(api, timeline, "c", "m").run() is SessionState.FAILED
    assert timeline.last.content == f"Error: {EMPTY_RESPONSE_ERROR}"


@pytest.mark.asyncio
async def test_malformed_lines_do_not_fail_session(api):
    timeline = _timeline()
    api.scripts.append(["data: {broken\n", text_frame("ok"), "noise\n", STOP])
    assert await StreamSession(api, timeline, "c", "m").run() is SessionState.COMPLETED
    assert timeline.last.content == "ok"


@pytest.mark.asyncio
async def test_cancel_keeps_partial_content(api):
    timeline = _timeline()
    gate = asyncio.Event()
    api.scripts.append([text_frame("Partial"), gate, text_frame(" more"), STOP])
    session = StreamSession(api, timeline, "c", "m")
    task = asyncio.create_task(session.run())
    await wait_until(lambda: timeline.last.content == "Partial")

    session.cancel()
    assert await task is SessionState.CANCELLED
    gate.set()
    await asyncio.sleep(0)
    assert timeline.last.content == "Partial"
    assert session.error is None


@pytest.mark.asyncio
async def test_cancel_before_run(api):
    session = StreamSession(api, _timeline(), "c", "m")
    session.cancel()
    assert await session.run() is SessionState.CANCELLED
    assert api.requests == []


@pytest.mark.asyncio
async def test_idle_timeout_fails_session(api):
    timeline = _timeline()
    api.scripts.append([text_frame("x"), asyncio.Event()])
    session = StreamSession(api, timeline, "c", "m", idle_timeout=0.05)
    assert await session.run() is SessionState.FAILED
    assert timeline.last.content.startswith("Error: No data received")
    assert isinstance(session.error, StreamTimeoutError)


@pytest.mark.asyncio
async def test_superseded_session_never_mutates(api):
    timeline = _timeline()
    gate = asyncio.Event()
    api.scripts.append([text_frame("old"), gate, text_frame(" stale"), STOP])
    api.scripts.append([text_frame("new"), STOP])

    old = StreamSession(api, timeline, "c", "m")
    old_task = asyncio.create_task(old.run())
    await wait_until(lambda: timeline.last.content == "old")

    new = StreamSession(api, timeline, "c", "m")
    writes = []
    timeline.subscribe(lambda t: writes.append(t.last.content))
    assert await new.run() is SessionState.COMPLETED

    gate.set()
    assert await old_task is SessionState.CANCELLED
    assert timeline.last.content == "new"
    assert "old stale" not in writes


@pytest.mark.asyncio
async def test_on_complete_called_once(api):
    calls = []

    async def on_complete(session):
        calls.append(session.state)

    api.scripts.append([text_frame("hi"), STOP])
    await StreamSession(api, _timeline(), "c", "m", on_complete=on_complete).run()
    assert calls == [SessionState.COMPLETED]


@pytest.mark.asyncio
async def test_run_twice_raises(api):
    api.scripts.append([text_frame("hi"), STOP])
    session = StreamSession(api, _timeline(), "c", "m")
    await session.run()
    with pytest.raises(RuntimeError):
        await session.run()


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_response(api):
    timeline = _timeline()
    api.request_gate = asyncio.Event()
    api.scripts.append([text_frame("late"), STOP])
    session = StreamSession(api, timeline, "c", "m")
    task = asyncio.create_task(session.run())
    await wait_until(lambda: session.state is SessionState.REQUESTING and api.requests)

    session.cancel()
    assert await asyncio.wait_for(task, timeout=1) is SessionState.CANCELLED
    assert timeline.last.content == ""
    assert session.error is None
    assert not timeline.is_streaming


@pytest.mark.asyncio
async def test_idle_timeout_while_waiting_for_response(api):
    timeline = _timeline()
    api.request_gate = asyncio.Event()
    api.scripts.append([text_frame("late"), STOP])
    session = StreamSession(api, timeline, "c", "m", idle_timeout=0.05)

    assert await asyncio.wait_for(session.run(), timeout=1) is SessionState.FAILED
    assert isinstance(session.error, StreamTimeoutError)
    assert timeline.last.content.startswith("Error: No response received")
