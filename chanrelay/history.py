from __future__ import annotations

from collections import deque

from .constants import HISTORY_CAPACITY
from .models import Message


class MessageHistory:
    """Bounded per-channel message log; the oldest entry is evicted first."""

    def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("history capacity must be positive")
        self._messages: deque[Message] = deque(maxlen=int(capacity))

    @property
    def capacity(self) -> int:
        return self._messages.maxlen or 0

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def snapshot(self) -> list[Message]:
        """Oldest first."""
        return list(self._messages)
