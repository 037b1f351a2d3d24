"""Tests for the frame decoder."""

import pytest

from chat_client.stream.decoder import (
    DONE_SENTINEL,
    EventFrameDecoder,
    iter_frames,
    iter_frames_sync,
)


def test_single_complete_frame():
    decoder = EventFrameDecoder()
    assert decoder.feed(b'data: {"type": "message_stop"}\n') == [{"type": "message_stop"}]


def test_frame_split_across_chunks():
    decoder = EventFrameDecoder()
    assert decoder.feed(b'data: {"type": "sta') == []
    assert decoder.feed(b'tus", "message": "hi"}\n') == [{"type": "status", "message": "hi"}]


def test_multibyte_character_split_across_chunks():
    encoded = 'data: {"text": "café"}\n'.encode("utf-8")
    split = encoded.index(b"\xc3") + 1
    decoder = EventFrameDecoder()
    assert decoder.feed(encoded[:split]) == []
    assert decoder.feed(encoded[split:]) == [{"text": "café"}]


def test_non_prefixed_lines_ignored():
    decoder = EventFrameDecoder()
    frames = decoder.feed(b': keep-alive\nevent: ping\n\ndata: {"a": 1}\n')
    assert frames == [{"a": 1}]


def test_crlf_line_endings():
    decoder = EventFrameDecoder()
    assert decoder.feed(b'data: {"a": 1}\r\n') == [{"a": 1}]


def test_malformed_json_is_transparent():
    valid = [b'data: {"n": 1}\n', b'data: {"n": 2}\n', b'data: {"n": 3}\n']
    noisy = [
        b'data: {"n": 1}\n',
        b"data: {not json\n",
        b'data: {"n": 2}\ndata: 42\n',
        b"garbage line\n",
        b'data: {"n": 3}\n',
    ]
    assert list(iter_frames_sync(noisy)) == list(iter_frames_sync(valid))


def test_done_stops_mid_chunk():
    decoder = EventFrameDecoder()
    frames = decoder.feed(b'data: {"n": 1}\ndata: [DONE]\ndata: {"n": 2}\n')
    assert frames == [{"n": 1}, DONE_SENTINEL]
    assert decoder.finished is True
    assert decoder.feed(b'data: {"n": 3}\n') == []
    assert decoder.flush() == []


def test_done_with_surrounding_whitespace():
    decoder = EventFrameDecoder()
    assert decoder.feed(b"data:  [DONE] \n") == [DONE_SENTINEL]


def test_flush_decodes_final_line_without_newline():
    decoder = EventFrameDecoder()
    assert decoder.feed(b'data: {"a": 1}\ndata: {"b": 2}') == [{"a": 1}]
    assert decoder.flush() == [{"b": 2}]
    assert decoder.flush() == []


def test_flush_drops_incomplete_json():
    decoder = EventFrameDecoder()
    decoder.feed(b'data: {"a": ')
    assert decoder.flush() == []


@pytest.mark.asyncio
async def test_iter_frames_stops_at_done():
    async def chunks():
        yield b'data: {"n": 1}\n'
        yield b"data: [DONE]\n"
        raise AssertionError("read past [DONE]")

    frames = [f async for f in iter_frames(chunks())]
    assert frames == [{"n": 1}, DONE_SENTINEL]
