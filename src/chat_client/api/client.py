"""Async HTTP client for the chat server: conversations, uploads, streaming."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

from chat_client.config import (
    API_BASE_URL,
    API_TOKEN,
    DEFAULT_MODEL,
    REQUEST_TIMEOUT,
    STREAM_IDLE_TIMEOUT,
)
from chat_client.exceptions import (
    AuthenticationError,
    StreamTimeoutError,
    TransportError,
    UploadError,
)
from chat_client.timeline.models import Conversation
from chat_client.timeline.parser import parse_conversation

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Server acknowledgement of an uploaded file."""

    file_id: str
    file_name: str
    file_type: str  # "image" | "document" | "text"
    mime_type: str
    size: int


class ChatAPIClient:
    """Wrapper around ``httpx.AsyncClient`` for the chat server's REST API.

    Args:
        base_url: API root, e.g. ``http://localhost:3001/api``.
        token: Bearer token sent with every request.
        timeout: Per-request timeout in seconds.
        stream_timeout: Longest wait for response headers or the next chunk
            of a chat stream. None waits forever.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token: str | None = API_TOKEN,
        timeout: float = REQUEST_TIMEOUT,
        stream_timeout: float | None = STREAM_IDLE_TIMEOUT,
        transport=None,
    ):
        try:
            import httpx
        except ImportError:
            raise ImportError(
                "httpx is required for ChatAPIClient. "
                "Install with: pip install httpx"
            )
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.stream_timeout = stream_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def client(self):
        """Access the underlying httpx client for advanced usage."""
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ChatAPIClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---- Conversations ----

    async def list_conversations(self) -> list[Conversation]:
        response = await self._request("GET", "/conversations")
        data = response.json()
        if isinstance(data, dict):
            data = data.get("conversations", [])
        return [parse_conversation(item) for item in data]

    async def create_conversation(
        self,
        title: str | None = None,
        model: str | None = DEFAULT_MODEL,
    ) -> Conversation:
        body: dict[str, Any] = {"model": model}
        if title is not None:
            body["title"] = title
        response = await self._request("POST", "/conversations", json=body)
        conversation = parse_conversation(response.json())
        if not conversation.id:
            raise TransportError("Server did not return a conversation id")
        logger.info(f"Created conversation {conversation.id}")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Fetch a conversation together with its stored messages."""
        response = await self._request("GET", f"/conversations/{conversation_id}")
        return parse_conversation(response.json())

    async def update_conversation(self, conversation_id: str, **fields: Any) -> dict:
        response = await self._request(
            "PATCH", f"/conversations/{conversation_id}", json=fields
        )
        return response.json()

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    async def delete_messages_from(self, conversation_id: str, message_id: str) -> dict:
        """Delete ``message_id`` and every later message of the conversation."""
        response = await self._request(
            "DELETE", f"/conversations/{conversation_id}/messages/{message_id}"
        )
        return response.json()

    # ---- Attachments ----

    async def upload_file(
        self,
        file_name: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        on_progress: Callable[[int], None] | None = None,
    ) -> UploadResult:
        """Multipart upload. ``on_progress`` receives 0-100 as the body is sent."""
        import httpx

        request = self._client.build_request(
            "POST", "/upload", files={"file": (file_name, data, mime_type)}
        )
        if on_progress is not None:
            request = self._client.build_request(
                "POST",
                "/upload",
                content=_report_progress(request, on_progress),
                headers=request.headers,
            )
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as e:
            raise UploadError(f"Upload of {file_name} failed: {e}") from e
        if not response.is_success:
            error = self._error_from(response)
            if isinstance(error, AuthenticationError):
                raise error
            raise UploadError(str(error))
        try:
            payload = response.json()
        except ValueError as e:
            raise UploadError(f"Upload of {file_name} returned an unreadable response") from e
        return UploadResult(
            file_id=str(payload["fileId"]),
            file_name=payload.get("fileName", file_name),
            file_type=payload.get("fileType", ""),
            mime_type=payload.get("mimeType", mime_type),
            size=int(payload.get("size", len(data))),
        )

    async def delete_attachment(self, file_id: str) -> None:
        try:
            await self._request("DELETE", f"/uploads/{file_id}")
        except AuthenticationError:
            raise
        except TransportError as e:
            raise UploadError(f"Failed to delete attachment {file_id}: {e}") from e

    def attachment_url(self, file_id: str) -> str:
        return f"{self.base_url}/uploads/{file_id}/raw"

    # ---- Chat stream ----

    @asynccontextmanager
    async def stream_chat(
        self,
        conversation_id: str,
        message: str,
        attachments: list[dict] | None = None,
    ) -> AsyncIterator[Any]:
        """Open the chat stream and yield the response once it is readable.

        Usage::

            async with api.stream_chat(conv_id, "Hello") as response:
                async for chunk in response.aiter_bytes():
                    ...

        Raises ``TransportError`` (with the server's ``error`` text) before
        yielding when the response is not successful.
        """
        import httpx

        body: dict[str, Any] = {"conversation_id": conversation_id, "message": message}
        if attachments:
            body["attachments"] = attachments
        try:
            async with self._client.stream(
                "POST",
                "/chat",
                json=body,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self.timeout, read=self.stream_timeout),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise self._error_from(response)
                yield response
        except httpx.TimeoutException as e:
            raise StreamTimeoutError(f"Chat stream timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Chat request failed: {e}") from e

    # ---- Internals ----

    async def _request(self, method: str, path: str, **kwargs: Any):
        import httpx

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        if not response.is_success:
            raise self._error_from(response)
        return response

    @staticmethod
    def _error_from(response) -> TransportError:
        """Build an error from a non-success response's ``{"error": ...}`` body."""
        try:
            data = response.json()
        except ValueError:
            data = {}
        message = data.get("error") if isinstance(data, dict) else None
        if response.status_code == 401:
            return AuthenticationError(message or "Authentication expired", 401)
        return TransportError(
            message or f"Request failed: {response.status_code}",
            response.status_code,
        )


async def _report_progress(request, on_progress: Callable[[int], None]) -> AsyncIterator[bytes]:
    total = int(request.headers.get("Content-Length") or 0)
    sent = 0
    on_progress(0)
    for part in request.stream:
        sent += len(part)
        if total:
            on_progress(min(100, round(sent * 100 / total)))
        yield part
