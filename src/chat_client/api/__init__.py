"""HTTP client for the chat server."""

from chat_client.api.client import ChatAPIClient, UploadResult

__all__ = ["ChatAPIClient", "UploadResult"]
