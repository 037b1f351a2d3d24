"""Conversation creation, loading, sending, and title reconciliation."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from chat_client.config import (
    DEFAULT_MODEL,
    PROVISIONAL_TITLE_LENGTH,
    STREAM_IDLE_TIMEOUT,
    TITLE_REFRESH_DELAYS,
)
from chat_client.exceptions import ChatClientError, LifecycleError
from chat_client.session.stream_session import StreamSession
from chat_client.timeline.attachments import AttachmentTray
from chat_client.timeline.drafts import DraftRetentionStore
from chat_client.timeline.models import Conversation, Draft, Message
from chat_client.timeline.store import TimelineStore

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationLifecycleController:
    """Owns the active conversation and starts stream sessions for it.

    A send on a conversation without an id first creates it on the server.
    While that first exchange is in flight, ``creating`` is set and
    ``load`` refuses to replace the optimistic timeline. After a completed
    session the server-generated title is polled in the background.

    Args:
        api: Object providing the ``ChatAPIClient`` methods used here.
        timeline: Timeline to drive; a fresh one is created if omitted.
        conversation: Conversation to start on; a new unsaved one if omitted.
        drafts: Draft store used by ``stash_draft``/``restore_draft``.
        model: Model for conversations created by this controller.
        idle_timeout: Passed to each ``StreamSession``.
        title_refresh_delays: Seconds to wait before each title poll.
        on_title_change: Called with the conversation when a new title arrives.
    """

    def __init__(
        self,
        api,
        timeline: TimelineStore | None = None,
        conversation: Conversation | None = None,
        drafts: DraftRetentionStore | None = None,
        model: str = DEFAULT_MODEL,
        idle_timeout: float | None = STREAM_IDLE_TIMEOUT,
        title_refresh_delays: tuple[float, ...] = TITLE_REFRESH_DELAYS,
        on_title_change: Callable[[Conversation], None] | None = None,
    ):
        self.api = api
        self.timeline = timeline if timeline is not None else TimelineStore()
        self.conversation = conversation or Conversation(model=model)
        self.drafts = drafts if drafts is not None else DraftRetentionStore()
        self.idle_timeout = idle_timeout
        self.title_refresh_delays = title_refresh_delays
        self.on_title_change = on_title_change
        self.current_session: StreamSession | None = None
        self._creating = False
        self._title_pending = False
        self._background: set[asyncio.Task] = set()

    @property
    def creating(self) -> bool:
        """True from conversation creation until its first session ends."""
        return self._creating

    @property
    def background_tasks(self) -> set[asyncio.Task]:
        return set(self._background)

    # ---- Navigation ----

    def should_load(self, conversation_id: str | None) -> bool:
        return bool(conversation_id) and not self._creating

    async def load(self, conversation_id: str) -> bool:
        """Replace the timeline with a stored conversation.

        Returns False without touching anything while a conversation is
        being created, since the reload would wipe the optimistic messages.
        """
        if not self.should_load(conversation_id):
            logger.debug(f"Suppressed load of {conversation_id} during creation")
            return False
        self.cancel()
        conversation = await self.api.get_conversation(conversation_id)
        messages, conversation.messages = conversation.messages, []
        self.conversation = conversation
        self._title_pending = False
        self.timeline.replace(messages)
        return True

    def reset(self, model: str | None = None) -> None:
        """Switch to a new, unsaved conversation."""
        self.cancel()
        self.conversation = Conversation(model=model or self.conversation.model)
        self._creating = False
        self._title_pending = False
        self.timeline.replace([])

    # ---- Drafts ----

    def stash_draft(self, draft: Draft) -> bool:
        return self.drafts.save(self.conversation.id, draft)

    def restore_draft(self) -> Draft | None:
        return self.drafts.load(self.conversation.id)

    # ---- Sending ----

    async def send(
        self,
        text: str,
        attachments: AttachmentTray | None = None,
    ) -> StreamSession | None:
        """Append the optimistic exchange, create the conversation if needed, and stream.

        Returns the finished session, or None when the send was refused or
        the conversation could not be created.
        """
        if attachments is not None and attachments.is_uploading:
            logger.warning("Send refused: attachments still uploading")
            return None
        refs = attachments.references() if attachments is not None else []
        if not text.strip() and not refs:
            return None
        if self.timeline.is_streaming or self._creating:
            logger.warning("Send refused: a response is already streaming")
            return None

        message_refs = attachments.message_refs() if attachments is not None else []
        if attachments is not None:
            attachments.take()
        self.timeline.append(
            Message(role="user", content=text, attachments=message_refs, created_at=_now_iso())
        )
        self.timeline.append(Message(role="assistant", created_at=_now_iso()))

        try:
            conversation_id = await self.ensure_conversation(text)
        except LifecycleError as e:
            logger.warning(str(e))
            self.timeline.apply_to_last(lambda msg: setattr(msg, "content", f"Error: {e}"))
            return None
        return await self.stream(conversation_id, text, refs)

    async def ensure_conversation(self, first_message: str) -> str:
        """Return the conversation id, creating the conversation on first use."""
        if self.conversation.id:
            return self.conversation.id
        provisional = first_message[:PROVISIONAL_TITLE_LENGTH]
        self._creating = True
        try:
            created = await self.api.create_conversation(
                title=provisional, model=self.conversation.model or None
            )
        except ChatClientError as e:
            self._creating = False
            raise LifecycleError(f"Failed to create conversation: {e}") from e
        self.conversation.id = created.id
        self.conversation.title = created.title or provisional
        self.conversation.model = created.model or self.conversation.model
        self._title_pending = True
        return created.id

    async def stream(
        self,
        conversation_id: str,
        text: str,
        attachments: list[dict] | None = None,
    ) -> StreamSession:
        """Run a new session against the timeline's trailing placeholder."""
        return await self.run_session(self.open_session(conversation_id, text, attachments))

    def open_session(
        self,
        conversation_id: str,
        text: str,
        attachments: list[dict] | None = None,
    ) -> StreamSession:
        """Create the next session without starting it.

        The session claims the timeline immediately, so ``send`` is refused
        from here on even if the caller awaits something before running it.
        """
        session = StreamSession(
            self.api,
            self.timeline,
            conversation_id,
            text,
            attachments=attachments or None,
            idle_timeout=self.idle_timeout,
            on_complete=self._on_session_complete,
        )
        self.current_session = session
        return session

    async def run_session(self, session: StreamSession) -> StreamSession:
        try:
            await session.run()
        finally:
            self._creating = False
        return session

    def cancel(self) -> None:
        """Cancel the live session, if any. The partial reply stays as rendered."""
        if self.current_session is not None:
            self.current_session.cancel()

    # ---- Title reconciliation ----

    async def _on_session_complete(self, session: StreamSession) -> None:
        if self._title_pending and self.conversation.id == session.conversation_id:
            self._spawn(self._refresh_title(session.conversation_id, self.conversation.title))

    async def _refresh_title(self, conversation_id: str, previous_title: str) -> None:
        """Poll until the server-generated title differs from the provisional one."""
        for attempt, delay in enumerate(self.title_refresh_delays, start=1):
            await asyncio.sleep(delay)
            if self.conversation.id != conversation_id:
                return
            try:
                fetched = await self.api.get_conversation(conversation_id)
            except ChatClientError as e:
                logger.warning(f"Title refresh failed (attempt {attempt}): {e}")
                continue
            if self.conversation.id != conversation_id:
                return
            if fetched.title and fetched.title != previous_title:
                self.conversation.title = fetched.title
                self._title_pending = False
                logger.info(f"Conversation {conversation_id} titled {fetched.title!r}")
                if self.on_title_change is not None:
                    self.on_title_change(self.conversation)
                return
        logger.debug(f"Title for {conversation_id} unchanged after {len(self.title_refresh_delays)} polls")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def aclose(self) -> None:
        """Cancel the live session and any background polling."""
        self.cancel()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
