"""Append-only conversation transcript and the session flags read by the UI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from chat.chat_client import DEFAULT_PORT, MAX_PORT, MIN_PORT


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True)
class Message:
    """Single transcript entry. Ordering is defined by ``sequence`` only."""

    text: str
    sender: Sender
    sequence: int


@dataclass(frozen=True)
class SessionFlags:
    """Snapshot of the UI-relevant session state."""

    listening: bool = False
    synthesis_enabled: bool = False
    last_error: Optional[str] = None
    endpoint_port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if not is_valid_port(self.endpoint_port):
            raise ValueError(f"endpoint_port must be within [{MIN_PORT}, {MAX_PORT}]")


def is_valid_port(value: object) -> bool:
    # bool is an int subclass; True/False are not ports.
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_PORT <= value <= MAX_PORT


class Transcript:
    """Ordered log of messages; entries are never edited or removed."""

    def __init__(self) -> None:
        self._messages: List[Message] = []

    def append(self, text: str, sender: Sender) -> Message:
        message = Message(text=text, sender=sender, sequence=len(self._messages) + 1)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]
