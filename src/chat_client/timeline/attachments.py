"""Pending attachments in the composer: upload, track, remove."""

from __future__ import annotations

import logging
import uuid

from chat_client.exceptions import ChatClientError
from chat_client.timeline.drafts import DraftRetentionStore
from chat_client.timeline.models import AttachmentRef, PendingAttachment

logger = logging.getLogger(__name__)


class AttachmentTray:
    """Files selected for the next message.

    Each attachment moves from ``uploading`` to ``done`` or ``error`` exactly
    once. Removal is allowed in any state and deletes the uploaded object on
    the server, even when the upload finishes after the removal.

    Args:
        api: Object providing ``upload_file`` and ``delete_attachment``
            (normally a ``ChatAPIClient``).
        drafts: Optional draft store to purge when an attachment is removed.
    """

    def __init__(self, api, drafts: DraftRetentionStore | None = None):
        self._api = api
        self._drafts = drafts
        self._items: dict[str, PendingAttachment] = {}

    @property
    def attachments(self) -> list[PendingAttachment]:
        return list(self._items.values())

    @property
    def is_uploading(self) -> bool:
        return any(a.status == "uploading" for a in self._items.values())

    async def add(self, file_name: str, data: bytes, mime_type: str) -> PendingAttachment:
        """Upload a file and track it until it settles."""
        pending = PendingAttachment(
            id=uuid.uuid4().hex,
            file_name=file_name,
            mime_type=mime_type,
            size=len(data),
        )
        self._items[pending.id] = pending

        def on_progress(percent: int) -> None:
            if pending.status == "uploading":
                pending.progress = max(pending.progress, min(100, int(percent)))

        try:
            result = await self._api.upload_file(
                file_name, data, mime_type, on_progress=on_progress
            )
        except ChatClientError as e:
            pending.status = "error"
            pending.error = str(e)
            logger.warning(f"Upload of {file_name} failed: {e}")
            return pending

        pending.status = "done"
        pending.progress = 100
        pending.remote_id = result.file_id
        pending.file_type = result.file_type

        if pending.id not in self._items:
            # Removed while uploading
            await self._delete_remote(result.file_id)
        return pending

    async def remove(self, attachment_id: str) -> bool:
        """Forget an attachment and delete its uploaded object, if any."""
        pending = self._items.pop(attachment_id, None)
        if self._drafts is not None:
            self._drafts.discard_attachment(attachment_id)
        if pending is None:
            return False
        if pending.remote_id:
            await self._delete_remote(pending.remote_id)
        return True

    def restore(self, attachments: list[PendingAttachment]) -> None:
        """Put back attachments from a restored draft."""
        for pending in attachments:
            self._items[pending.id] = pending

    def take(self) -> list[PendingAttachment]:
        """Hand the current attachments over to a message and empty the tray."""
        taken = list(self._items.values())
        self._items.clear()
        return taken

    def references(self) -> list[dict]:
        """Wire references for uploaded attachments: ``[{"fileId": ...}]``."""
        return [
            {"fileId": a.remote_id}
            for a in self._items.values()
            if a.status == "done" and a.remote_id
        ]

    def message_refs(self) -> list[AttachmentRef]:
        return [
            AttachmentRef(
                file_id=a.remote_id,
                file_name=a.file_name,
                file_type=a.file_type or "",
                mime_type=a.mime_type,
                size=a.size,
            )
            for a in self._items.values()
            if a.status == "done" and a.remote_id
        ]

    async def _delete_remote(self, file_id: str) -> None:
        try:
            await self._api.delete_attachment(file_id)
        except ChatClientError as e:
            logger.warning(f"Failed to delete uploaded attachment {file_id}: {e}")
