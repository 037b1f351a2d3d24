"""Map decoded frame payloads onto typed stream events."""

from __future__ import annotations

import logging
import re

from chat_client.stream.decoder import DONE_SENTINEL, Frame
from chat_client.stream.events import (
    Done,
    DocumentCreated,
    ErrorEvent,
    MessageStop,
    SearchSources,
    StatusUpdate,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    ThinkingSummary,
)
from chat_client.timeline.parser import parse_citations, parse_document

logger = logging.getLogger(__name__)

# Some relay servers inline reasoning as <thinking>...</thinking> inside text deltas
_THINKING_BLOCK = re.compile(r"<thinking>([\s\S]*?)</thinking>")
_THINKING_STRIP = re.compile(r"<thinking>[\s\S]*?</thinking>\s*")


class StreamEventRouter:
    """Stateful router for one response stream.

    The wire sends text and thinking as increments; the router keeps the
    running totals so every delta event carries the full value so far.
    Unknown ``type`` values and malformed shapes yield no events.
    """

    def __init__(self):
        self.text = ""
        self.thinking = ""

    def route(self, frame: Frame) -> list[StreamEvent]:
        """Return the events for one frame, in order. Usually zero or one."""
        if frame == DONE_SENTINEL:
            return [Done()]
        if not isinstance(frame, dict):
            return []

        kind = frame.get("type")
        if kind == "content_block_delta":
            return self._route_delta(frame.get("delta"))
        if kind == "content_block_start":
            block = frame.get("content_block")
            if isinstance(block, dict) and block.get("type") == "thinking":
                self.thinking = ""
            return []
        if kind == "message_stop":
            # A stop before any answer text marks a server-side tool turn, not the end
            if not self.text:
                logger.debug("Ignoring message_stop before any text")
                return []
            return [MessageStop()]
        if kind == "error":
            return [ErrorEvent(self._error_message(frame))]
        if kind == "status":
            return [StatusUpdate(message=str(frame.get("message", "")))]
        if kind == "system":
            return [
                StatusUpdate(
                    message=str(frame.get("message", "")),
                    event=str(frame.get("event") or "system"),
                )
            ]
        if kind == "thinking_summary":
            summary = frame.get("summary") or frame.get("text")
            return [ThinkingSummary(str(summary))] if summary else []
        if kind == "search_sources":
            sources = frame.get("sources")
            if not isinstance(sources, list):
                return []
            return [SearchSources(sources=parse_citations(sources), query=frame.get("query"))]
        if kind == "document_created":
            doc = parse_document(frame.get("document"))
            return [DocumentCreated(doc)] if doc else []

        logger.debug(f"Ignoring unknown stream event type: {kind!r}")
        return []

    def _route_delta(self, delta) -> list[StreamEvent]:
        if not isinstance(delta, dict):
            return []
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            chunk = delta.get("text")
            if not chunk or not isinstance(chunk, str):
                return []
            return self._route_text(chunk)
        if delta_type == "thinking_delta":
            chunk = delta.get("thinking")
            if not chunk or not isinstance(chunk, str):
                return []
            self.thinking += chunk
            return [ThinkingDelta(chunk, self.thinking)]
        return []

    def _route_text(self, chunk: str) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if "<thinking>" in chunk or "</thinking>" in chunk:
            for match in _THINKING_BLOCK.finditer(chunk):
                self.thinking += match.group(1)
                events.append(ThinkingDelta(match.group(1), self.thinking))
            chunk = _THINKING_STRIP.sub("", chunk)
        if chunk:
            self.text += chunk
            events.append(TextDelta(chunk, self.text))
        return events

    @staticmethod
    def _error_message(frame: dict) -> str:
        error = frame.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        message = str(error) if error else "Unknown error"
        detail = frame.get("detail")
        if detail:
            message += f"\n{detail}"
        return message
