from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class _TypingEntry:
    timestamp: int
    color_tag: str


class TypingTracker:
    """Who is currently typing in one channel.

    A display name is either absent or present with the time (ms) of its last
    typing event. Entries are only removed by ``clear`` or ``prune``; callers
    broadcast ``snapshot()`` after every change.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _TypingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def set(self, name: str, color_tag: str, now_ms: int) -> None:
        self._entries[name] = _TypingEntry(timestamp=int(now_ms), color_tag=color_tag)

    def clear(self, name: str) -> bool:
        return self._entries.pop(name, None) is not None

    def prune(self, now_ms: int, stale_after_s: float) -> list[str]:
        """Drop entries older than ``stale_after_s``; return the removed names."""
        cutoff = int(now_ms) - int(stale_after_s * 1000)
        stale = [n for n, e in self._entries.items() if e.timestamp < cutoff]
        for name in stale:
            del self._entries[name]
        return stale

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"timestamp": e.timestamp, "colorTag": e.color_tag}
            for name, e in self._entries.items()
        }
