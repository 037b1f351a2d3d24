"""One send -> stream -> terminate cycle applied to the timeline."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from chat_client.config import STREAM_IDLE_TIMEOUT
from chat_client.exceptions import (
    ChatClientError,
    ProtocolError,
    StreamTimeoutError,
    TransportError,
)
from chat_client.stream.decoder import EventFrameDecoder
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
from chat_client.stream.router import StreamEventRouter
from chat_client.timeline.models import Message
from chat_client.timeline.store import TimelineStore

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_ERROR = "The response ended before any content was received"


class SessionState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED}
)


class _Stop(Exception):
    """Internal: leave the read loop."""


class StreamSession:
    """Drives one chat response into the timeline's trailing assistant message.

    The session claims a token from the ``TimelineStore`` when it is
    created, which immediately makes any earlier session stale. Every
    mutation carries that token, so once the session is cancelled or
    superseded nothing it reads can reach the timeline again.

    Args:
        api: Object providing ``stream_chat`` (normally ``ChatAPIClient``).
        timeline: The timeline whose last message is the assistant placeholder.
        conversation_id: Persisted conversation id.
        message: User text to send.
        attachments: Wire references, ``[{"fileId": ...}]``.
        idle_timeout: Seconds without bytes before the session fails.
        on_complete: Awaited after a successful completion.
    """

    def __init__(
        self,
        api,
        timeline: TimelineStore,
        conversation_id: str,
        message: str,
        attachments: list[dict] | None = None,
        idle_timeout: float | None = STREAM_IDLE_TIMEOUT,
        on_complete: Callable[[StreamSession], Awaitable[None]] | None = None,
    ):
        self._api = api
        self._timeline = timeline
        self.conversation_id = conversation_id
        self.message = message
        self.attachments = attachments
        self.idle_timeout = idle_timeout
        self._on_complete = on_complete
        self._token = timeline.claim_session()
        self._cancel_requested = asyncio.Event()
        self.state = SessionState.IDLE
        self.error: ChatClientError | None = None

    @property
    def generation(self) -> int:
        return self._token.generation

    @property
    def is_live(self) -> bool:
        """Whether this session may still mutate the timeline."""
        return self.state not in TERMINAL_STATES and self._timeline.is_current(self._token)

    def cancel(self) -> None:
        """Stop reading and stop mutating the timeline. No-op once terminal."""
        if self.state in TERMINAL_STATES:
            return
        self._cancel_requested.set()
        self._timeline.release(self._token)
        logger.info(f"Session {self.generation} cancellation requested")
        if self.state is SessionState.IDLE:
            self._finish(SessionState.CANCELLED)

    async def run(self) -> SessionState:
        """Send the message and stream the reply. Never raises for stream errors."""
        if self.state is SessionState.CANCELLED:
            return self.state
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session {self.generation} already started")
        if self._cancel_requested.is_set() or not self._timeline.is_current(self._token):
            return self._finish(SessionState.CANCELLED)

        self._transition(SessionState.REQUESTING)
        decoder = EventFrameDecoder()
        router = StreamEventRouter()
        try:
            async with contextlib.AsyncExitStack() as stack:
                response = await self._wait(
                    stack.enter_async_context(
                        self._api.stream_chat(
                            self.conversation_id, self.message, self.attachments
                        )
                    ),
                    "response",
                )
                if self._stopped():
                    return self._finish(SessionState.CANCELLED)
                self._transition(SessionState.STREAMING)
                async with contextlib.aclosing(self._read(response)) as chunks:
                    async for chunk in chunks:
                        for frame in decoder.feed(chunk):
                            self._handle(router.route(frame))
                        if decoder.finished:
                            break
                    else:
                        for frame in decoder.flush():
                            self._handle(router.route(frame))
        except _Stop:
            pass
        except asyncio.CancelledError:
            self._finish(SessionState.CANCELLED)
            raise
        except ChatClientError as e:
            if self._stopped():
                return self._finish(SessionState.CANCELLED)
            self._fail(e)
        except Exception as e:
            if self._stopped():
                return self._finish(SessionState.CANCELLED)
            logger.exception(f"Session {self.generation} crashed while streaming")
            self._fail(TransportError(str(e) or type(e).__name__))

        if self.state not in TERMINAL_STATES:
            # Transport EOF without a terminal frame
            if self._stopped():
                self._finish(SessionState.CANCELLED)
            elif self._has_content():
                self._complete()
            else:
                self._fail(ProtocolError(EMPTY_RESPONSE_ERROR))
        if self.state is SessionState.COMPLETED and self._on_complete is not None:
            await self._on_complete(self)
        return self.state

    # ---- Reading ----

    async def _read(self, response) -> AsyncIterator[bytes]:
        """Yield response chunks until EOF, cancellation, or the idle timeout."""
        chunks = response.aiter_bytes().__aiter__()
        while True:
            try:
                chunk = await self._wait(_next_chunk(chunks), "data")
            except StopAsyncIteration:
                return
            if self._stopped():
                return
            yield chunk

    async def _wait(self, awaitable, waiting_for: str):
        """Await ``awaitable`` unless cancellation or the idle timeout comes first.

        Raises ``_Stop`` on cancellation and ``StreamTimeoutError`` on timeout;
        either way the pending work is cancelled before returning.
        """
        task = asyncio.ensure_future(awaitable)
        cancelled = asyncio.ensure_future(self._cancel_requested.wait())
        try:
            done, _ = await asyncio.wait(
                {task, cancelled},
                timeout=self.idle_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Session {self.generation} dropped late error: {task.exception()}")
        if cancelled in done:
            raise _Stop()
        raise StreamTimeoutError(
            f"No {waiting_for} received for {self.idle_timeout:g} seconds"
        )

    def _stopped(self) -> bool:
        return self._cancel_requested.is_set() or not self._timeline.is_current(self._token)

    # ---- Applying events ----

    def _handle(self, events: list[StreamEvent]) -> None:
        """Apply routed events in order; raise ``_Stop`` once the session is terminal."""
        for event in events:
            if self._stopped():
                self._finish(SessionState.CANCELLED)
            elif isinstance(event, (MessageStop, Done)):
                self._complete()
            elif isinstance(event, ErrorEvent):
                self._fail(ProtocolError(event.message))
            else:
                self._apply(_mutator_for(event))
            if self.state in TERMINAL_STATES:
                raise _Stop()

    def _apply(self, mutator: Callable[[Message], None]) -> bool:
        applied = self._timeline.apply_to_last(mutator, token=self._token)
        if not applied and not self._timeline.is_current(self._token):
            self._finish(SessionState.CANCELLED)
        return applied

    def _complete(self) -> None:
        self._apply(_finalize)
        self._finish(SessionState.COMPLETED)

    def _fail(self, error: ChatClientError) -> None:
        """Overwrite the placeholder with the error; partial content is discarded."""
        self.error = error

        def show_error(msg: Message) -> None:
            msg.content = f"Error: {error}"
            msg.is_thinking = False
            msg.search_status = None

        self._timeline.apply_to_last(show_error, token=self._token)
        logger.warning(f"Session {self.generation} failed: {error}")
        self._finish(SessionState.FAILED)

    def _has_content(self) -> bool:
        last = self._timeline.last
        return last is not None and last.role == "assistant" and bool(last.content)

    # ---- State ----

    def _transition(self, state: SessionState) -> None:
        logger.debug(f"Session {self.generation}: {self.state.value} -> {state.value}")
        self.state = state

    def _finish(self, state: SessionState) -> SessionState:
        if self.state in TERMINAL_STATES:
            return self.state
        self._transition(state)
        self._timeline.release(self._token)
        logger.info(f"Session {self.generation} {state.value}")
        return state


def _finalize(msg: Message) -> None:
    msg.is_thinking = False
    msg.search_status = None


def _mutator_for(event: StreamEvent) -> Callable[[Message], None]:
    """Build the timeline update for a non-terminal event."""
    if isinstance(event, TextDelta):
        def mutate(msg: Message) -> None:
            msg.content = event.full_so_far
            msg.is_thinking = False
    elif isinstance(event, ThinkingDelta):
        def mutate(msg: Message) -> None:
            msg.thinking = event.full_so_far
            msg.is_thinking = True
    elif isinstance(event, ThinkingSummary):
        def mutate(msg: Message) -> None:
            msg.thinking_summary = event.text
    elif isinstance(event, StatusUpdate):
        def mutate(msg: Message) -> None:
            msg.search_status = event.message or None
    elif isinstance(event, SearchSources):
        def mutate(msg: Message) -> None:
            msg.add_citations(event.sources)
            if event.query:
                msg.add_search_log(event.query, event.sources)
    elif isinstance(event, DocumentCreated):
        def mutate(msg: Message) -> None:
            msg.document = event.doc
    else:
        raise TypeError(f"No timeline update for {type(event).__name__}")
    return mutate


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes:
    return await chunks.__anext__()
