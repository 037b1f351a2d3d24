"""Stream sessions and the controllers that start them."""

from chat_client.session.stream_session import SessionState, StreamSession
from chat_client.session.lifecycle import ConversationLifecycleController
from chat_client.session.replay import EditReplayController

__all__ = [
    "SessionState",
    "StreamSession",
    "ConversationLifecycleController",
    "EditReplayController",
]
