"""Central configuration: defaults read once from the environment."""

import os

# Server
API_BASE_URL = os.environ.get("CHAT_API_BASE_URL", "http://localhost:3001/api")
API_TOKEN = os.environ.get("CHAT_API_TOKEN") or None

# Model used when creating a conversation without an explicit one
DEFAULT_MODEL = os.environ.get("CHAT_DEFAULT_MODEL", "claude-sonnet-4-5-20250929")

# Timeouts (seconds)
REQUEST_TIMEOUT = float(os.environ.get("CHAT_REQUEST_TIMEOUT", "30"))
STREAM_IDLE_TIMEOUT = float(os.environ.get("CHAT_STREAM_IDLE_TIMEOUT", "60"))

# Title generation runs server-side with no completion signal, so the client polls
TITLE_REFRESH_DELAYS = (0.0, 1.5, 3.0, 6.0, 10.0)

# Provisional title = first N characters of the first message
PROVISIONAL_TITLE_LENGTH = 30

# Draft key for a conversation that has not been created yet
NEW_CONVERSATION_KEY = "__new__"
