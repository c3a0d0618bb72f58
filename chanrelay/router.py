from __future__ import annotations

import logging
from typing import Any

from .constants import (
    EV_ERROR,
    EV_GET_USERS,
    EV_JOIN,
    EV_LEAVE,
    EV_LEFT_CHANNEL,
    EV_SEND_MESSAGE,
    EV_TYPING,
    K_BODY,
    K_T,
)
from .dispatch import Dispatcher, Outgoing, queue_unicast
from .emotes import EmoteCatalog, StaticEmoteCatalog
from .envelope import unpack, validate_envelope
from .errors import NotInChannel, RelayError, ValidationError
from .ratelimit import RateLimiter
from .registry import ChannelRegistry
from .stats import StatsManager


class EventRouter:
    """
    Turns inbound connection events into registry operations.

    This class is responsible for:
    - Decoding and validating inbound envelopes
    - Per-connection rate limiting
    - Dispatching by event name (join, leave, send-message, typing, get-users)
    - Reporting relay errors back to the offending connection only
    - Delivering the resulting events once the registry lock is released
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        dispatcher: Dispatcher,
        *,
        catalog: EmoteCatalog | None = None,
        limiter: RateLimiter | None = None,
        stats: StatsManager | None = None,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.catalog = catalog or StaticEmoteCatalog(registry.config.emote_names)
        self.limiter = limiter or RateLimiter(registry.config.rate_limit_msgs_per_minute)
        self.stats = stats or StatsManager(registry)
        self.log = logging.getLogger("chanrelay.router")

    def on_connect(self, connection_id: str) -> None:
        self.stats.inc("connections")
        self.log.info("Connection opened conn=%s", connection_id)

    def on_disconnect(self, connection_id: str) -> None:
        outgoing: Outgoing = []
        if self.registry.leave(connection_id, outgoing) is not None:
            self.stats.inc("leaves")
        self.limiter.forget(connection_id)
        self.dispatcher.deliver(outgoing)
        self.log.info("Connection closed conn=%s", connection_id)

    def on_packet(self, connection_id: str, data: bytes) -> None:
        self.stats.inc("pkts_in")
        self.stats.inc("bytes_in", len(data))

        outgoing: Outgoing = []
        if not self.limiter.refill_and_take(connection_id, 1.0):
            self.stats.inc("rate_limited")
            self.log.debug("Rate limited conn=%s", connection_id)
            self._queue_error(outgoing, connection_id, "rate limited", code="RateLimited")
            self.dispatcher.deliver(outgoing)
            return

        try:
            env = unpack(data)
            validate_envelope(env)
        except Exception as e:
            self.stats.inc("pkts_bad")
            self.log.debug(
                "Bad packet conn=%s bytes=%s err=%s", connection_id, len(data), e
            )
            self._queue_error(outgoing, connection_id, f"bad message: {e}", code="BadMessage")
            self.dispatcher.deliver(outgoing)
            return

        self.handle_event(connection_id, env[K_T], env.get(K_BODY) or {})

    def handle_event(self, connection_id: str, event: str, body: dict[str, Any]) -> None:
        """Apply one decoded event and deliver whatever it produced."""
        outgoing: Outgoing = []
        try:
            self._route(connection_id, event, body, outgoing)
        except NotInChannel as e:
            # Typing from a connection that never joined is not worth a reply.
            if event != EV_TYPING:
                self._queue_error(outgoing, connection_id, e.message, code="NotInChannel")
        except ValidationError as e:
            self.stats.inc("rejected")
            self.log.debug(
                "Rejected conn=%s event=%s field=%s reason=%s",
                connection_id,
                event,
                e.field,
                e.reason,
            )
            outgoing.clear()
            self._queue_error(outgoing, connection_id, e.message, code=e.reason)
        except RelayError as e:
            self.stats.inc("rejected")
            outgoing.clear()
            self._queue_error(outgoing, connection_id, e.message, code=type(e).__name__)

        if self.log.isEnabledFor(logging.DEBUG) and outgoing:
            self.log.debug(
                "Delivering %d event(s) conn=%s event=%s",
                len(outgoing),
                connection_id,
                event,
            )
        self.dispatcher.deliver(outgoing)

    def _route(
        self, connection_id: str, event: str, body: dict[str, Any], outgoing: Outgoing
    ) -> None:
        if event == EV_JOIN:
            self.registry.join(
                connection_id, body.get("displayName"), body.get("channelName"), outgoing
            )
            self.stats.inc("joins")
        elif event == EV_SEND_MESSAGE:
            # Resolve the catalog before the registry takes its lock.
            names = self.catalog.names()
            self.registry.post_message(
                connection_id,
                body.get("body"),
                body.get("replyTo"),
                outgoing,
                known_names=names,
            )
            self.stats.inc("messages")
        elif event == EV_TYPING:
            # Anything but a real boolean true (e.g. the string "false") clears.
            self.registry.set_typing(connection_id, body.get("isTyping") is True, outgoing)
        elif event == EV_GET_USERS:
            self.registry.list_users(connection_id, outgoing)
        elif event == EV_LEAVE:
            sess = self.registry.leave(connection_id, outgoing)
            if sess is None:
                raise NotInChannel("You are not in a channel")
            self.stats.inc("leaves")
            queue_unicast(
                outgoing, connection_id, EV_LEFT_CHANNEL, {"channelName": sess.channel_name}
            )
        else:
            self._queue_error(outgoing, connection_id, f"unknown event {event!r}", code="UnknownEvent")

    def _queue_error(
        self, outgoing: Outgoing, connection_id: str, text: str, *, code: str
    ) -> None:
        self.stats.inc("errors_sent")
        queue_unicast(outgoing, connection_id, EV_ERROR, {"message": text, "code": code})
