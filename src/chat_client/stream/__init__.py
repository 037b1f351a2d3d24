"""Chat stream protocol: frame decoding and event routing."""

from chat_client.stream.decoder import (
    DONE_SENTINEL,
    FRAME_PREFIX,
    EventFrameDecoder,
    iter_frames,
    iter_frames_sync,
)
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
    is_terminal,
)
from chat_client.stream.router import StreamEventRouter

__all__ = [
    "DONE_SENTINEL",
    "FRAME_PREFIX",
    "EventFrameDecoder",
    "iter_frames",
    "iter_frames_sync",
    "Done",
    "DocumentCreated",
    "ErrorEvent",
    "MessageStop",
    "SearchSources",
    "StatusUpdate",
    "StreamEvent",
    "TextDelta",
    "ThinkingDelta",
    "ThinkingSummary",
    "is_terminal",
    "StreamEventRouter",
]
