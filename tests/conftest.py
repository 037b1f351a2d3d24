"""Shared fakes for session and controller tests."""

import asyncio
import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from chat_client.timeline.models import Conversation


def frame(payload) -> str:
    return f"data: {json.dumps(payload)}\n"


def text_frame(text: str) -> str:
    return frame({"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}})


def thinking_frame(text: str) -> str:
    return frame({"type": "content_block_delta", "delta": {"type": "thinking_delta", "thinking": text}})


STOP = frame({"type": "message_stop"})
DONE = "data: [DONE]\n"


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class FakeResponse:
    """Streams scripted chunks; an ``asyncio.Event`` in the script blocks until set."""

    def __init__(self, script):
        self._script = script

    async def aiter_bytes(self):
        for item in self._script:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, Exception):
                raise item
            yield item.encode() if isinstance(item, str) else item


class FakeChatAPI:
    """In-memory stand-in for ``ChatAPIClient``.

    Each ``stream_chat`` call consumes the next script: a list of chunks,
    or an exception raised before the response is yielded.
    """

    def __init__(self):
        self.scripts = []
        self.requests = []
        self.create_conversation = AsyncMock(
            return_value=Conversation(id="conv-1", model="test-model", title="Hello")
        )
        self.get_conversation = AsyncMock(
            return_value=Conversation(id="conv-1", model="test-model", title="Hello")
        )
        self.delete_messages_from = AsyncMock(return_value={"deleted": 1})
        self.upload_file = AsyncMock()
        self.delete_attachment = AsyncMock(return_value=None)
        # When set, stream_chat waits on it before the response is available
        self.request_gate: asyncio.Event | None = None

    @asynccontextmanager
    async def stream_chat(self, conversation_id, message, attachments=None):
        self.requests.append(
            {"conversation_id": conversation_id, "message": message, "attachments": attachments}
        )
        if self.request_gate is not None:
            await self.request_gate.wait()
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        yield FakeResponse(script)


@pytest.fixture
def api():
    return FakeChatAPI()
