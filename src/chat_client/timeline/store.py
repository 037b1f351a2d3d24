"""Ordered, observable message timeline for the active conversation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from chat_client.exceptions import TimelineError
from chat_client.timeline.models import Message

logger = logging.getLogger(__name__)

Listener = Callable[["TimelineStore"], None]


@dataclass(frozen=True)
class SessionToken:
    """Identity of one stream session. Generations are never reused."""

    generation: int


class TimelineStore:
    """Single source of truth for the messages of one conversation.

    At most one session token is live at a time. Streaming updates go
    through ``apply_to_last`` with that token; anything carrying an older
    token is rejected, so a superseded session can never write again.
    """

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = list(messages or [])
        self._generation = 0
        self._live: SessionToken | None = None
        self._listeners: list[Listener] = []

    # ---- Reading ----

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the timeline, oldest first."""
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    @property
    def is_streaming(self) -> bool:
        return self._live is not None

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    # ---- Session identity ----

    def claim_session(self) -> SessionToken:
        """Issue a new live token, invalidating whichever session held the previous one."""
        self._generation += 1
        if self._live is not None:
            logger.info(f"Session {self._live.generation} superseded by {self._generation}")
        self._live = SessionToken(self._generation)
        return self._live

    def is_current(self, token: SessionToken) -> bool:
        return self._live is not None and token == self._live

    def release(self, token: SessionToken) -> bool:
        """End ``token``'s tenure. No-op if it was already superseded."""
        if not self.is_current(token):
            return False
        self._live = None
        self._notify()
        return True

    def invalidate(self) -> None:
        """Drop the live token without issuing a new one."""
        if self._live is not None:
            self._live = None
            self._notify()

    # ---- Mutation ----

    def append(self, message: Message) -> None:
        self._messages.append(message)
        self._notify()

    def apply_to_last(
        self,
        mutator: Callable[[Message], None],
        token: SessionToken | None = None,
        role: str = "assistant",
    ) -> bool:
        """Apply ``mutator`` to the last message if it has ``role``.

        With a token, the update is accepted only while that token is live.
        Returns whether the mutation was applied.
        """
        if token is not None and not self.is_current(token):
            logger.warning(f"Rejected update from stale session {token.generation}")
            return False
        if not self._messages or self._messages[-1].role != role:
            return False
        mutator(self._messages[-1])
        self._notify()
        return True

    def truncate_from(self, index: int) -> None:
        """Remove the message at ``index`` and everything after it."""
        if index < 0 or index > len(self._messages):
            raise TimelineError(
                f"Cannot truncate at index {index} of a timeline with {len(self._messages)} messages"
            )
        del self._messages[index:]
        self._notify()

    def replace(self, messages: list[Message]) -> None:
        """Swap in a whole new message list (e.g. after loading a conversation)."""
        self._live = None
        self._messages = list(messages)
        self._notify()

    # ---- Observers ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Timeline listener failed")
