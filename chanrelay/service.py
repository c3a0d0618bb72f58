from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable

from .config import RelayRuntimeConfig
from .dispatch import Dispatcher, Outgoing
from .emotes import StaticEmoteCatalog
from .ratelimit import RateLimiter
from .registry import ChannelRegistry
from .router import EventRouter
from .stats import StatsManager
from .transport import LinkTransport


class RelayService:
    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("chanrelay.relay")

        self._shutdown = threading.Event()

        # Reclamation timers still pending; cancelled on stop().
        self._timers_lock = threading.Lock()
        self._timers: set[threading.Timer] = set()

        self.registry = ChannelRegistry(config, scheduler=self._schedule)
        self.stats_manager = StatsManager(self.registry)
        self.transport = LinkTransport(config, self.stats_manager)
        self.dispatcher = Dispatcher(self.transport.send)
        self.router = EventRouter(
            self.registry,
            self.dispatcher,
            catalog=StaticEmoteCatalog(config.emote_names),
            limiter=RateLimiter(config.rate_limit_msgs_per_minute),
            stats=self.stats_manager,
        )
        self.transport.attach(self.router)

        self._sweep_thread: threading.Thread | None = None
        self._announce_thread: threading.Thread | None = None
        self._stats_thread: threading.Thread | None = None

    def _schedule(self, delay_s: float, fn: Callable[[], None]) -> threading.Timer:
        def fire() -> None:
            with self._timers_lock:
                self._timers.discard(timer)
            if self._shutdown.is_set():
                return
            try:
                fn()
            except Exception:
                self.log.exception("Scheduled task failed")

        timer = threading.Timer(delay_s, fire)
        timer.name = "chanrelay-reclaim"
        timer.daemon = True
        with self._timers_lock:
            self._timers.add(timer)
        timer.start()
        return timer

    def start(self) -> None:
        self.stats_manager.set_start_time()
        self.transport.start()

        self.log.info(
            "Policy history_capacity=%s grace_s=%s typing_stale_s=%s typing_sweep_stale_s=%s max_tokens=%s rate_limit_msgs_per_minute=%s",
            self.config.history_capacity,
            self.config.channel_grace_s,
            self.config.typing_stale_s,
            self.config.typing_sweep_stale_s,
            self.config.max_embedded_tokens,
            self.config.rate_limit_msgs_per_minute,
        )

        if self.config.typing_sweep_interval_s and self.config.typing_sweep_interval_s > 0:
            self._sweep_thread = threading.Thread(
                target=self._sweep_loop, name="chanrelay-typing-sweep", daemon=True
            )
            self._sweep_thread.start()

        if self.config.announce_period_s and self.config.announce_period_s > 0:
            self._announce_thread = threading.Thread(
                target=self._announce_loop, name="chanrelay-announce", daemon=True
            )
            self._announce_thread.start()

        if self.config.stats_log_interval_s and self.config.stats_log_interval_s > 0:
            self._stats_thread = threading.Thread(
                target=self._stats_loop, name="chanrelay-stats", daemon=True
            )
            self._stats_thread.start()

    def sweep_typing_once(self) -> int:
        outgoing: Outgoing = []
        removed = self.registry.sweep_typing(float(self.config.typing_sweep_stale_s), outgoing)
        if removed:
            self.stats_manager.inc("typing_swept", removed)
            self.log.debug("Swept %d stale typing entr(ies)", removed)
            self.dispatcher.deliver(outgoing)
        return removed

    def _sweep_loop(self) -> None:
        interval = float(self.config.typing_sweep_interval_s)
        while not self._shutdown.wait(interval):
            try:
                self.sweep_typing_once()
            except Exception:
                self.log.exception("Typing sweep failed")

    def _announce_loop(self) -> None:
        period = float(self.config.announce_period_s)
        while not self._shutdown.wait(period):
            self.transport.announce()

    def _stats_loop(self) -> None:
        interval = float(self.config.stats_log_interval_s)
        while not self._shutdown.wait(interval):
            try:
                self.log.info("%s", self.stats_manager.format_stats())
            except Exception:
                self.log.exception("Stats logging failed")

    def run_forever(self) -> None:
        if self.transport.destination is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

        self.log.info("%s", self.stats_manager.format_stats())

    def stop(self) -> None:
        self._shutdown.set()

        with self._timers_lock:
            timers = list(self._timers)
            self._timers.clear()
        for t in timers:
            t.cancel()

        self.registry.clear_all()
        self.router.limiter.clear_all()
        self.transport.stop()
