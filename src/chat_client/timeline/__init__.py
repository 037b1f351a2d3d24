"""Timeline state: messages, drafts, pending attachments."""

from chat_client.timeline.models import (
    AttachmentRef,
    Citation,
    Conversation,
    DocumentRef,
    Draft,
    Message,
    PendingAttachment,
    SearchLog,
)
from chat_client.timeline.store import SessionToken, TimelineStore
from chat_client.timeline.drafts import DraftRetentionStore, draft_key
from chat_client.timeline.attachments import AttachmentTray
from chat_client.timeline.parser import parse_conversation, parse_message

__all__ = [
    "AttachmentRef",
    "Citation",
    "Conversation",
    "DocumentRef",
    "Draft",
    "Message",
    "PendingAttachment",
    "SearchLog",
    "SessionToken",
    "TimelineStore",
    "DraftRetentionStore",
    "draft_key",
    "AttachmentTray",
    "parse_conversation",
    "parse_message",
]
