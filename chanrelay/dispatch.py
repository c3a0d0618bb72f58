"""Outbound event queueing and delivery.

Registry operations describe their effects as a list of ``Delivery`` tuples
built from the membership observed by that same transition. Delivery happens
afterwards, outside the registry lock, through the transport's
``send(connection_id, event, payload)`` capability.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

SendFn = Callable[[str, str, dict], None]


class Delivery(NamedTuple):
    connection_id: str
    event: str
    payload: dict[str, Any]


Outgoing = list[Delivery]


def queue_unicast(
    outgoing: Outgoing, connection_id: str, event: str, payload: dict[str, Any]
) -> None:
    outgoing.append(Delivery(connection_id, event, payload))


def queue_multicast(
    outgoing: Outgoing,
    recipients: Iterable[str],
    event: str,
    payload: dict[str, Any],
    *,
    exclude: str | None = None,
) -> int:
    """Queue ``event`` once per distinct recipient, skipping ``exclude``.

    Without ``exclude`` this is an inclusive channel broadcast. Returns the
    number of deliveries queued.
    """
    n = 0
    for connection_id in dict.fromkeys(recipients):
        if connection_id == exclude:
            continue
        outgoing.append(Delivery(connection_id, event, payload))
        n += 1
    return n


class Dispatcher:
    def __init__(self, send: SendFn, *, on_sent: Callable[[Delivery], None] | None = None) -> None:
        self._send = send
        self._on_sent = on_sent
        self.log = logging.getLogger("chanrelay.dispatch")

    def deliver(self, outgoing: Outgoing) -> int:
        """Send every queued delivery; a failed send never stops the rest."""
        sent = 0
        for delivery in outgoing:
            try:
                self._send(delivery.connection_id, delivery.event, delivery.payload)
            except Exception:
                self.log.debug(
                    "Send failed conn=%s event=%s",
                    delivery.connection_id,
                    delivery.event,
                    exc_info=True,
                )
                continue
            sent += 1
            if self._on_sent is not None:
                self._on_sent(delivery)
        return sent
