"""Per-conversation retention of unsent composer state."""

from __future__ import annotations

import logging
from dataclasses import replace

from chat_client.config import NEW_CONVERSATION_KEY
from chat_client.timeline.models import Draft

logger = logging.getLogger(__name__)


def draft_key(conversation_id: str | None) -> str:
    """Key for a conversation; not-yet-created conversations share one sentinel key."""
    return conversation_id or NEW_CONVERSATION_KEY


class DraftRetentionStore:
    """Keeps drafts across navigation. Each saved draft can be restored once."""

    def __init__(self):
        self._drafts: dict[str, Draft] = {}

    def save(self, conversation_id: str | None, draft: Draft) -> bool:
        """Store ``draft`` unless it is empty. Returns whether it was kept."""
        key = draft_key(conversation_id)
        if draft.is_trivial():
            self._drafts.pop(key, None)
            return False
        self._drafts[key] = replace(draft, attachments=list(draft.attachments))
        logger.debug(f"Saved draft for {key} ({len(draft.attachments)} attachments)")
        return True

    def load(self, conversation_id: str | None) -> Draft | None:
        """Return and forget the draft for ``conversation_id``."""
        return self._drafts.pop(draft_key(conversation_id), None)

    def discard_attachment(self, attachment_id: str) -> None:
        """Drop every reference to a removed attachment, deleting drafts left empty."""
        for key in list(self._drafts):
            draft = self._drafts[key]
            kept = [a for a in draft.attachments if a.id != attachment_id]
            if len(kept) == len(draft.attachments):
                continue
            draft.attachments = kept
            if draft.is_trivial():
                del self._drafts[key]

    def __contains__(self, conversation_id: str | None) -> bool:
        return draft_key(conversation_id) in self._drafts

    def __len__(self) -> int:
        return len(self._drafts)
