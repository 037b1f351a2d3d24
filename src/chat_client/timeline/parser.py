"""Parse server JSON payloads into timeline models.

Pure functions, no network calls. Tolerant of missing keys: the server
omits optional fields rather than sending nulls.
"""

from __future__ import annotations

from chat_client.timeline.models import (
    AttachmentRef,
    Citation,
    Conversation,
    DocumentRef,
    Message,
)


def parse_citation(raw: dict) -> Citation | None:
    """Build a Citation, or None when the source has no URL."""
    if not isinstance(raw, dict):
        return None
    url = raw.get("url")
    if not url:
        return None
    return Citation(
        url=url,
        title=raw.get("title") or url,
        cited_text=raw.get("cited_text"),
    )


def parse_citations(raw_sources: list) -> list[Citation]:
    citations = []
    for raw in raw_sources:
        citation = parse_citation(raw)
        if citation is not None:
            citations.append(citation)
    return citations


def parse_document(raw: dict) -> DocumentRef | None:
    if not isinstance(raw, dict) or not raw.get("id"):
        return None
    return DocumentRef(
        id=str(raw["id"]),
        title=raw.get("title", ""),
        filename=raw.get("filename", ""),
        url=raw.get("url", ""),
        content=raw.get("content"),
        format=raw.get("format"),
        slides=list(raw.get("slides") or []),
    )


def parse_attachment(raw: dict) -> AttachmentRef:
    return AttachmentRef(
        file_id=str(raw.get("fileId") or raw.get("file_id") or raw.get("id", "")),
        file_name=raw.get("fileName") or raw.get("file_name", ""),
        file_type=raw.get("fileType") or raw.get("file_type", ""),
        mime_type=raw.get("mimeType") or raw.get("mime_type", ""),
        size=int(raw.get("size") or 0),
    )


def parse_message(raw: dict) -> Message:
    """Convert a stored message from the conversation API into a Message."""
    message = Message(
        role=raw.get("role", "assistant"),
        content=raw.get("content") or "",
        thinking=raw.get("thinking"),
        thinking_summary=raw.get("thinking_summary"),
        document=parse_document(raw.get("document")),
        attachments=[parse_attachment(a) for a in raw.get("attachments") or []],
        is_summary=bool(raw.get("is_summary", False)),
        created_at=raw.get("created_at"),
        server_id=str(raw["id"]) if raw.get("id") is not None else None,
    )
    message.add_citations(parse_citations(raw.get("citations") or []))
    for log in raw.get("search_logs") or []:
        if isinstance(log, dict) and log.get("query"):
            message.add_search_log(log["query"], parse_citations(log.get("results") or []))
    return message


def parse_conversation(raw: dict) -> Conversation:
    """Convert a conversation payload (with or without messages)."""
    return Conversation(
        id=str(raw["id"]) if raw.get("id") is not None else None,
        model=raw.get("model") or "",
        title=raw.get("title") or "",
        messages=[parse_message(m) for m in raw.get("messages") or []],
        created_at=raw.get("created_at"),
        updated_at=raw.get("updated_at"),
    )
