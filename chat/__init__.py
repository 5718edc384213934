"""Client for the NutriBot chat backend."""

from .chat_client import (
    BadStatusError,
    ChatClient,
    ChatClientConfig,
    ChatEndpoint,
    ChatError,
    ChatReply,
    MalformedResponseError,
    NetworkError,
)

__all__ = [
    "BadStatusError",
    "ChatClient",
    "ChatClientConfig",
    "ChatEndpoint",
    "ChatError",
    "ChatReply",
    "MalformedResponseError",
    "NetworkError",
]
