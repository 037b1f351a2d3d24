"""Edit and resend: rewind the timeline to a user message and stream again."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from chat_client.exceptions import ChatClientError, ReplayError, TimelineError
from chat_client.session.lifecycle import ConversationLifecycleController
from chat_client.session.stream_session import StreamSession
from chat_client.timeline.models import Message

logger = logging.getLogger(__name__)


class EditReplayController:
    """Replays the conversation from a user message with new (or the same) content.

    Local truncation is optimistic and never rolled back; deleting the
    matching server-side history is best-effort and only logged on failure.
    """

    def __init__(self, lifecycle: ConversationLifecycleController):
        self.lifecycle = lifecycle

    @property
    def timeline(self):
        return self.lifecycle.timeline

    async def resend(self, index: int) -> StreamSession:
        """Replay the user message at ``index`` unchanged."""
        target = self._target(index)
        return await self.edit(index, target.content)

    async def edit(self, index: int, content: str) -> StreamSession:
        """Replace the user message at ``index`` with ``content`` and stream a new reply."""
        target = self._target(index)
        if not content.strip():
            raise TimelineError("Edited message cannot be empty")
        conversation_id = self.lifecycle.conversation.id
        if not conversation_id:
            raise TimelineError("Cannot replay a conversation that was never sent")

        self.lifecycle.cancel()
        server_id = target.server_id
        attachments = list(target.attachments)

        self.timeline.truncate_from(index)
        now = datetime.now(timezone.utc).isoformat()
        self.timeline.append(
            Message(role="user", content=content, attachments=attachments, created_at=now)
        )
        self.timeline.append(Message(role="assistant", created_at=now))
        refs = [{"fileId": a.file_id} for a in attachments if a.file_id]
        # Claim the timeline before the first await so no send can slip in
        session = self.lifecycle.open_session(conversation_id, content, refs)

        try:
            await self._delete_history(conversation_id, index, server_id)
        except ReplayError as e:
            logger.warning(f"Server history not truncated, continuing: {e}")
        except asyncio.CancelledError:
            session.cancel()
            raise

        return await self.lifecycle.run_session(session)

    def _target(self, index: int) -> Message:
        if index < 0 or index >= len(self.timeline):
            raise TimelineError(
                f"No message at index {index} (timeline has {len(self.timeline)})"
            )
        target = self.timeline[index]
        if target.role != "user":
            raise TimelineError(f"Message {index} is a {target.role} message, not a user message")
        return target

    async def _delete_history(
        self,
        conversation_id: str,
        index: int,
        server_id: str | None,
    ) -> None:
        """Delete the stored message at ``index`` and everything after it."""
        try:
            if server_id is None:
                # Messages sent during this session carry no server id; match by position
                stored = await self.lifecycle.api.get_conversation(conversation_id)
                if index >= len(stored.messages):
                    logger.debug(f"Nothing stored at index {index} of {conversation_id}")
                    return
                server_id = stored.messages[index].server_id
                if server_id is None:
                    raise ReplayError(f"Stored message {index} has no id")
            await self.lifecycle.api.delete_messages_from(conversation_id, server_id)
        except ReplayError:
            raise
        except ChatClientError as e:
            raise ReplayError(f"Failed to delete messages from {server_id or index}: {e}") from e
