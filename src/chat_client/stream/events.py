"""Typed events produced from the chat stream."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from chat_client.timeline.models import Citation, DocumentRef


@dataclass(frozen=True)
class TextDelta:
    """New answer text. ``full_so_far`` is the complete answer up to this point."""

    text: str
    full_so_far: str


@dataclass(frozen=True)
class ThinkingDelta:
    text: str
    full_so_far: str


@dataclass(frozen=True)
class ThinkingSummary:
    text: str


@dataclass(frozen=True)
class StatusUpdate:
    """Progress notice such as "Searching the web..." or a compaction notice."""

    message: str
    event: str = "status"


@dataclass(frozen=True)
class SearchSources:
    sources: list[Citation] = field(default_factory=list)
    query: str | None = None


@dataclass(frozen=True)
class DocumentCreated:
    doc: DocumentRef


@dataclass(frozen=True)
class MessageStop:
    pass


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class Done:
    pass


StreamEvent = Union[
    TextDelta,
    ThinkingDelta,
    ThinkingSummary,
    StatusUpdate,
    SearchSources,
    DocumentCreated,
    MessageStop,
    ErrorEvent,
    Done,
]

TERMINAL_EVENTS = (MessageStop, ErrorEvent, Done)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
