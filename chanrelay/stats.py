"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .registry import ChannelRegistry


class StatsManager:
    """
    Process counters plus a read-only view of registry state.

    Tracks counters for:
    - Connections and packets in
    - Bytes in/out
    - Joins, leaves and messages
    - Rejections, errors sent and rate limiting
    - Typing sweeps
    """

    def __init__(self, registry: ChannelRegistry) -> None:
        self.registry = registry
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "pkts_in": 0,
            "pkts_bad": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "joins": 0,
            "leaves": 0,
            "messages": 0,
            "rejected": 0,
            "errors_sent": 0,
            "rate_limited": 0,
            "typing_swept": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def counters(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def snapshot(self) -> dict[str, Any]:
        started = self.started_monotonic
        uptime_s = (time.monotonic() - started) if started is not None else 0.0
        return {
            "uptime_s": uptime_s,
            "counters": self.counters(),
            **self.registry.stats(),
        }

    def format_stats(self) -> str:
        from . import __version__

        snap = self.snapshot()
        c = snap["counters"]
        channels = snap["channels"]

        top = sorted(
            ((name, info["count"]) for name, info in channels.items()),
            key=lambda x: (-x[1], x[0]),
        )[:5]

        lines: list[str] = [
            f"chanrelay {__version__} stats",
            f"uptime_s={snap['uptime_s']:.1f}",
            f"channels={snap['channels_total']} sessions={snap['sessions_total']}",
        ]
        if top:
            lines.append("top_channels=" + ", ".join(f"{n}:{k}" for n, k in top))
        lines.append(
            "io: connections={} pkts_in={} pkts_bad={} bytes_in={} bytes_out={}".format(
                c.get("connections", 0),
                c.get("pkts_in", 0),
                c.get("pkts_bad", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
            )
        )
        lines.append(
            "events: joins={} leaves={} messages={} rejected={} errors_sent={} rate_limited={} typing_swept={}".format(
                c.get("joins", 0),
                c.get("leaves", 0),
                c.get("messages", 0),
                c.get("rejected", 0),
                c.get("errors_sent", 0),
                c.get("rate_limited", 0),
                c.get("typing_swept", 0),
            )
        )
        return "\n".join(lines)
