"""Unified exception hierarchy for chat-client."""


class ChatClientError(Exception):
    """Base exception for all chat-client errors."""


# Transport
class TransportError(ChatClientError):
    """A request could not be sent or the server answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """The server rejected the credentials (HTTP 401)."""


class StreamTimeoutError(TransportError):
    """No bytes arrived on an open stream within the idle timeout."""


# Protocol
class ProtocolError(ChatClientError):
    """The server emitted an explicit error frame."""


# Conversation lifecycle
class LifecycleError(ChatClientError):
    """Creating the conversation resource failed."""


class ReplayError(ChatClientError):
    """Deleting server-side history during edit/resend failed."""


# Attachments
class UploadError(ChatClientError):
    """Uploading or deleting an attachment failed."""


# Timeline
class TimelineError(ChatClientError):
    """Invalid operation on the local timeline."""
