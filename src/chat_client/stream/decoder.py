"""Incremental decoder for the line-framed ``data: <json>`` chat stream."""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, Union

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# A decoded frame: a JSON object, or DONE_SENTINEL
Frame = Union[dict, str]


class EventFrameDecoder:
    """Turns raw transport chunks into frame payloads.

    Chunks may split frames (and UTF-8 sequences) anywhere; the incomplete
    tail is buffered until the next ``feed``. Lines without the frame prefix
    and payloads that are not JSON objects are dropped. Once ``[DONE]`` is
    seen the decoder is finished and ignores everything else, including the
    rest of the chunk it arrived in.
    """

    def __init__(self, prefix: str = FRAME_PREFIX):
        self.prefix = prefix
        self.finished = False
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Consume one transport chunk and return the complete frames it finished."""
        if self.finished:
            return []
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> list[Frame]:
        """Decode whatever is left at end of stream (a final line without newline)."""
        if self.finished:
            return []
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        if not tail:
            return []
        return self._parse_lines([tail])

    def _parse_lines(self, lines: list[str]) -> list[Frame]:
        frames: list[Frame] = []
        for line in lines:
            frame = self._parse_line(line)
            if frame is None:
                continue
            frames.append(frame)
            if frame == DONE_SENTINEL:
                self.finished = True
                self._buffer = ""
                break
        return frames

    def _parse_line(self, line: str) -> Frame | None:
        line = line.rstrip("\r")
        if not line.startswith(self.prefix):
            return None
        data = line[len(self.prefix):]
        if data.strip() == DONE_SENTINEL:
            return DONE_SENTINEL
        try:
            payload = json.loads(data)
        except ValueError:
            logger.debug(f"Dropped non-JSON frame: {data[:80]!r}")
            return None
        if not isinstance(payload, dict):
            logger.debug(f"Dropped non-object frame: {data[:80]!r}")
            return None
        return payload


async def iter_frames(
    chunks: AsyncIterable[bytes | str],
    decoder: EventFrameDecoder | None = None,
) -> AsyncIterator[Frame]:
    """Lazily decode an async chunk stream into frames, stopping at ``[DONE]``."""
    decoder = decoder or EventFrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
        if decoder.finished:
            return
    for frame in decoder.flush():
        yield frame


def iter_frames_sync(
    chunks: Iterable[bytes | str],
    decoder: EventFrameDecoder | None = None,
) -> Iterator[Frame]:
    """Synchronous counterpart of ``iter_frames``."""
    decoder = decoder or EventFrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
        if decoder.finished:
            return
    yield from decoder.flush()
