"""Data models for the conversation timeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class Citation:
    """A web source cited by the assistant. Unique by ``url``."""

    url: str
    title: str = ""
    cited_text: str | None = None


@dataclass
class SearchLog:
    """One web search the assistant ran, with the sources it returned."""

    query: str
    results: list[Citation] = field(default_factory=list)


@dataclass
class DocumentRef:
    """A document generated by the assistant during a reply."""

    id: str
    title: str
    filename: str = ""
    url: str = ""
    content: str | None = None
    format: str | None = None  # "markdown" | "docx" | "pptx"
    slides: list[dict] = field(default_factory=list)


@dataclass
class AttachmentRef:
    """An uploaded file referenced by a message."""

    file_id: str
    file_name: str = ""
    file_type: str = ""  # "image" | "document" | "text"
    mime_type: str = ""
    size: int = 0


@dataclass
class Message:
    """A single timeline entry.

    ``content`` is replaced wholesale on every streamed delta; the server
    sends the running total, never a diff.
    """

    role: str  # "user" | "assistant"
    content: str = ""
    thinking: str | None = None
    thinking_summary: str | None = None
    is_thinking: bool = False
    search_status: str | None = None
    citations: list[Citation] = field(default_factory=list)
    search_logs: list[SearchLog] = field(default_factory=list)
    document: DocumentRef | None = None
    attachments: list[AttachmentRef] = field(default_factory=list)
    is_summary: bool = False
    created_at: str | None = None  # ISO 8601
    server_id: str | None = None

    def add_citations(self, citations: list[Citation]) -> None:
        """Append citations, skipping URLs already present."""
        seen = {c.url for c in self.citations}
        for citation in citations:
            if citation.url and citation.url not in seen:
                self.citations.append(citation)
                seen.add(citation.url)

    def add_search_log(self, query: str, results: list[Citation]) -> None:
        """Record a search, merging results into an existing log for the same query."""
        for log in self.search_logs:
            if log.query == query:
                known = {r.url for r in log.results}
                for result in results:
                    if result.url not in known:
                        log.results.append(result)
                        known.add(result.url)
                return
        unique: list[Citation] = []
        known = set()
        for result in results:
            if result.url not in known:
                unique.append(result)
                known.add(result.url)
        self.search_logs.append(SearchLog(query=query, results=unique))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Conversation:
    """A conversation resource. ``id`` is None until the first send creates it."""

    id: str | None = None
    model: str = ""
    title: str = ""
    messages: list[Message] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class PendingAttachment:
    """A file selected in the composer, uploading or uploaded."""

    id: str
    file_name: str
    mime_type: str
    size: int
    status: str = "uploading"  # "uploading" | "done" | "error"
    progress: int = 0  # 0-100
    remote_id: str | None = None
    file_type: str | None = None
    error: str | None = None


@dataclass
class Draft:
    """Unsent composer state for one conversation."""

    text: str = ""
    attachments: list[PendingAttachment] = field(default_factory=list)
    input_height: int | None = None

    def is_trivial(self) -> bool:
        return not self.text.strip() and not self.attachments
