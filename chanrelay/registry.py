"""Channel and session registry for the relay.

This module owns all mutable relay state:
- Sessions (one per joined connection)
- Channels with their members, typing tracker and message history
- Deferred reclamation of channels that became empty

Every public method takes the registry lock, so each operation is applied as
one atomic unit. Methods that change what clients see append deliveries to an
``outgoing`` list; the caller sends them after the method returns.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .colors import color_for
from .config import RelayRuntimeConfig
from .constants import (
    EV_CHANNEL_INFO,
    EV_JOINED_CHANNEL,
    EV_MESSAGE_HISTORY,
    EV_NEW_MESSAGE,
    EV_USER_JOINED,
    EV_USER_LEFT,
    EV_USER_TYPING,
    EV_USERS_LIST,
)
from .dispatch import Outgoing, queue_multicast, queue_unicast
from .errors import NameTaken, NotInChannel
from .history import MessageHistory
from .models import Member, Message, Session
from .typing_tracker import TypingTracker
from .validation import (
    MessagePolicy,
    normalize_channel_name,
    normalize_display_name,
    validate_message,
)

Scheduler = Callable[[float, Callable[[], None]], Any]


def _thread_timer(delay_s: float, fn: Callable[[], None]) -> threading.Timer:
    t = threading.Timer(delay_s, fn)
    t.name = "chanrelay-reclaim"
    t.daemon = True
    t.start()
    return t


@dataclass
class Channel:
    name: str
    created_at: int
    history: MessageHistory
    members: dict[str, Member] = field(default_factory=dict)
    typing: TypingTracker = field(default_factory=TypingTracker)
    # Bumped every time the channel becomes empty, so a reclamation timer
    # scheduled for an earlier emptiness is ignored.
    empty_epoch: int = 0

    def member_ids(self) -> list[str]:
        return list(self.members.keys())

    def member_payloads(self) -> list[dict[str, Any]]:
        return [m.to_payload() for m in self.members.values()]

    def holder_of(self, display_name: str) -> str | None:
        key = display_name.casefold()
        for connection_id, m in self.members.items():
            if m.display_name.casefold() == key:
                return connection_id
        return None


class ChannelRegistry:
    def __init__(
        self,
        config: RelayRuntimeConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config or RelayRuntimeConfig()
        self.policy = MessagePolicy.from_config(self.config)
        self.log = logging.getLogger("chanrelay.registry")
        self.lock = threading.RLock()

        self._clock = clock
        self._schedule = scheduler or _thread_timer
        self._seq = itertools.count(1)

        self._sessions: dict[str, Session] = {}
        self._channels: dict[str, Channel] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # Queries

    def session_for(self, connection_id: str) -> Session | None:
        with self.lock:
            return self._sessions.get(connection_id)

    def channel_names(self) -> list[str]:
        with self.lock:
            return list(self._channels.keys())

    def members_of(self, channel_name: str) -> list[Member]:
        with self.lock:
            ch = self._channels.get(channel_name)
            return list(ch.members.values()) if ch else []

    def history_of(self, channel_name: str) -> list[Message]:
        with self.lock:
            ch = self._channels.get(channel_name)
            return ch.history.snapshot() if ch else []

    def typing_in(self, channel_name: str) -> dict[str, dict[str, Any]]:
        with self.lock:
            ch = self._channels.get(channel_name)
            return ch.typing.snapshot() if ch else {}

    def stats(self) -> dict[str, Any]:
        with self.lock:
            return {
                "channels_total": len(self._channels),
                "sessions_total": len(self._sessions),
                "channels": {
                    name: {"count": len(ch.members), "createdAt": ch.created_at}
                    for name, ch in self._channels.items()
                },
            }

    # Membership

    def join(
        self,
        connection_id: str,
        raw_name: Any,
        raw_channel: Any,
        outgoing: Outgoing,
    ) -> Session:
        """Join ``raw_channel`` as ``raw_name``, leaving any previous channel.

        Raises ``ValidationError`` or ``NameTaken`` before any state changes.
        """
        display_name = normalize_display_name(raw_name)
        channel_name = normalize_channel_name(
            raw_channel, max_len=int(self.config.max_channel_name_len)
        )

        with self.lock:
            target = self._channels.get(channel_name)
            if target is not None:
                holder = target.holder_of(display_name)
                if holder is not None and holder != connection_id:
                    raise NameTaken(display_name, channel_name)

            if connection_id in self._sessions:
                self._leave_locked(connection_id, outgoing)

            now = self._now_ms()
            ch = self._channels.get(channel_name)
            if ch is None:
                ch = Channel(
                    name=channel_name,
                    created_at=now,
                    history=MessageHistory(int(self.config.history_capacity)),
                )
                self._channels[channel_name] = ch
                self.log.info("Channel created channel=%s", channel_name)

            color_tag = color_for(display_name)
            ch.members[connection_id] = Member(
                connection_id=connection_id,
                display_name=display_name,
                color_tag=color_tag,
                joined_at=now,
            )
            sess = Session(
                connection_id=connection_id,
                display_name=display_name,
                color_tag=color_tag,
                channel_name=channel_name,
            )
            self._sessions[connection_id] = sess

            count = len(ch.members)
            recipients = ch.member_ids()

            queue_unicast(
                outgoing,
                connection_id,
                EV_JOINED_CHANNEL,
                {
                    "displayName": display_name,
                    "channelName": channel_name,
                    "colorTag": color_tag,
                },
            )
            queue_unicast(
                outgoing,
                connection_id,
                EV_MESSAGE_HISTORY,
                {
                    "channelName": channel_name,
                    "messages": [m.to_payload() for m in ch.history.snapshot()],
                },
            )
            queue_multicast(
                outgoing,
                recipients,
                EV_CHANNEL_INFO,
                {
                    "channelName": channel_name,
                    "count": count,
                    "members": ch.member_payloads(),
                },
            )
            queue_multicast(
                outgoing,
                recipients,
                EV_USER_JOINED,
                {"displayName": display_name, "count": count, "colorTag": color_tag},
                exclude=connection_id,
            )

            self.log.info(
                "JOIN conn=%s name=%r channel=%s count=%s",
                connection_id,
                display_name,
                channel_name,
                count,
            )
            return sess

    def leave(self, connection_id: str, outgoing: Outgoing) -> Session | None:
        """Remove the connection from its channel; return the dropped session."""
        with self.lock:
            return self._leave_locked(connection_id, outgoing)

    def _leave_locked(self, connection_id: str, outgoing: Outgoing) -> Session | None:
        sess = self._sessions.pop(connection_id, None)
        if sess is None:
            return None

        channel_name = sess.channel_name
        ch = self._channels.get(channel_name) if channel_name else None
        if ch is None:
            return sess

        ch.members.pop(connection_id, None)
        ch.typing.clear(sess.display_name)

        self.log.info(
            "LEAVE conn=%s name=%r channel=%s remaining=%s",
            connection_id,
            sess.display_name,
            channel_name,
            len(ch.members),
        )

        if not ch.members:
            ch.empty_epoch += 1
            epoch = ch.empty_epoch
            self._schedule(
                float(self.config.channel_grace_s),
                lambda: self.reclaim_if_empty(channel_name, ch, epoch),
            )
            self.log.debug(
                "Channel empty channel=%s reclaim_in_s=%s",
                channel_name,
                self.config.channel_grace_s,
            )
            return sess

        count = len(ch.members)
        recipients = ch.member_ids()
        queue_multicast(
            outgoing,
            recipients,
            EV_USER_LEFT,
            {"displayName": sess.display_name, "count": count, "colorTag": sess.color_tag},
        )
        self._queue_typing_snapshot(ch, outgoing, prune=True)
        queue_multicast(
            outgoing,
            recipients,
            EV_CHANNEL_INFO,
            {"channelName": ch.name, "count": count, "members": ch.member_payloads()},
        )
        return sess

    def reclaim_if_empty(self, channel_name: str, channel: Channel, epoch: int) -> bool:
        """Timer callback: delete ``channel`` if nobody rejoined since ``epoch``."""
        with self.lock:
            current = self._channels.get(channel_name)
            if current is not channel:
                return False
            if channel.members or channel.empty_epoch != epoch:
                return False
            del self._channels[channel_name]

        self.log.info("Channel reclaimed channel=%s", channel_name)
        return True

    # Messages

    def post_message(
        self,
        connection_id: str,
        raw_body: Any,
        raw_reply: Any,
        outgoing: Outgoing,
        *,
        known_names: Iterable[str] | None = None,
    ) -> Message:
        """Validate and store a message, broadcasting it to the whole channel.

        ``known_names`` is the emote catalog, resolved by the caller before
        entering here.
        """
        with self.lock:
            sess = self._sessions.get(connection_id)
            if sess is None or sess.channel_name not in self._channels:
                raise NotInChannel()

            body, reply = validate_message(raw_body, raw_reply, self.policy, known_names)

            ch = self._channels[sess.channel_name]
            now = self._now_ms()
            message = Message(
                id=f"{now}-{connection_id}-{next(self._seq)}",
                display_name=sess.display_name,
                body=body,
                timestamp=now,
                channel_name=ch.name,
                color_tag=sess.color_tag,
                reply_to=reply,
            )
            ch.history.append(message)

            # One inclusive broadcast; the sender gets exactly one copy.
            queue_multicast(outgoing, ch.member_ids(), EV_NEW_MESSAGE, message.to_payload())

            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "MSG conn=%s name=%r channel=%s chars=%s reply=%s",
                    connection_id,
                    sess.display_name,
                    ch.name,
                    len(body),
                    reply is not None,
                )
            return message

    # Typing

    def set_typing(self, connection_id: str, is_typing: bool, outgoing: Outgoing) -> None:
        with self.lock:
            sess = self._sessions.get(connection_id)
            if sess is None or sess.channel_name not in self._channels:
                raise NotInChannel()

            ch = self._channels[sess.channel_name]
            if is_typing:
                ch.typing.set(sess.display_name, sess.color_tag, self._now_ms())
            else:
                ch.typing.clear(sess.display_name)
            self._queue_typing_snapshot(ch, outgoing, prune=True)

    def sweep_typing(self, stale_after_s: float, outgoing: Outgoing) -> int:
        """Drop typing entries older than ``stale_after_s`` in every channel.

        Only channels that actually lost an entry get a snapshot broadcast.
        Returns the number of entries removed.
        """
        removed = 0
        with self.lock:
            now = self._now_ms()
            for ch in self._channels.values():
                stale = ch.typing.prune(now, stale_after_s)
                if not stale:
                    continue
                removed += len(stale)
                self._queue_typing_snapshot(ch, outgoing, prune=False)
        return removed

    def _queue_typing_snapshot(self, ch: Channel, outgoing: Outgoing, *, prune: bool) -> None:
        if prune:
            ch.typing.prune(self._now_ms(), float(self.config.typing_stale_s))
        queue_multicast(
            outgoing,
            ch.member_ids(),
            EV_USER_TYPING,
            {"channelName": ch.name, "typingUsers": ch.typing.snapshot()},
        )

    def list_users(self, connection_id: str, outgoing: Outgoing) -> list[Member]:
        with self.lock:
            sess = self._sessions.get(connection_id)
            if sess is None or sess.channel_name not in self._channels:
                raise NotInChannel()

            ch = self._channels[sess.channel_name]
            queue_unicast(
                outgoing,
                connection_id,
                EV_USERS_LIST,
                {"channelName": ch.name, "members": ch.member_payloads()},
            )
            return list(ch.members.values())

    def clear_all(self) -> list[str]:
        """Drop every session and channel; return the connection ids dropped."""
        with self.lock:
            connection_ids = list(self._sessions.keys())
            self._sessions.clear()
            self._channels.clear()
            return connection_ids
