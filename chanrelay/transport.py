"""Reticulum link transport for the relay.

Each established ``RNS.Link`` is one relay connection, identified by the hex
form of its link id. Inbound packets (and completed inbound resources) are
handed to the router; outbound events are packed into CBOR envelopes and sent
as a single packet when they fit the link MDU, otherwise as an
``RNS.Resource``.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING, Any

import RNS

from .config import RelayRuntimeConfig
from .envelope import make_envelope, pack
from .util import expand_path, fmt_hash

if TYPE_CHECKING:
    from .router import EventRouter
    from .stats import StatsManager


def connection_id_for(link: RNS.Link) -> str:
    lid = getattr(link, "link_id", None)
    if isinstance(lid, (bytes, bytearray)):
        return bytes(lid).hex()
    h = getattr(link, "hash", None)
    if isinstance(h, (bytes, bytearray)):
        return bytes(h).hex()
    return f"link-{id(link):x}"


class LinkTransport:
    def __init__(self, config: RelayRuntimeConfig, stats: StatsManager) -> None:
        self.config = config
        self.stats = stats
        self.log = logging.getLogger("chanrelay.transport")
        self.router: EventRouter | None = None

        self.identity: RNS.Identity | None = None
        self.destination: RNS.Destination | None = None

        self._links_lock = threading.Lock()
        self._links: dict[str, RNS.Link] = {}

    def attach(self, router: EventRouter) -> None:
        self.router = router

    def start(self) -> None:
        self.log.info("Starting Reticulum")
        RNS.Reticulum(configdir=self.config.configdir, require_shared_instance=False)

        if not self.config.identity_path:
            raise RuntimeError("identity_path is not set")
        self.identity = self._load_identity(self.config.identity_path)

        parts = [p for p in str(self.config.dest_name).split(".") if p]
        if not parts:
            raise ValueError("dest_name must not be empty")
        app_name, aspects = parts[0], parts[1:]

        self.destination = RNS.Destination(
            self.identity,
            RNS.Destination.IN,
            RNS.Destination.SINGLE,
            app_name,
            *aspects,
        )
        self.destination.set_link_established_callback(self._on_link)

        if self.config.announce_on_start:
            self.announce()

        self.log.info(
            "Relay listening dest_name=%s dest_hash=%s",
            self.config.dest_name,
            fmt_hash(self.destination.hash, prefix=0),
        )

    def announce(self) -> None:
        if self.destination is None:
            return
        try:
            self.destination.announce(
                app_data=pack({"proto": "chanrelay", "v": 1, "name": self.config.relay_name})
            )
        except Exception:
            self.log.exception("Announce failed")

    def stop(self) -> None:
        with self._links_lock:
            links = list(self._links.values())
            self._links.clear()

        for link in links:
            try:
                link.teardown()
            except Exception:
                self.log.debug("Link teardown failed", exc_info=True)

    def _load_identity(self, path: str) -> RNS.Identity:
        p = expand_path(path)
        if not os.path.exists(p):
            raise RuntimeError(f"Identity not found at {p}")
        ident = RNS.Identity.from_file(p)
        if ident is None:
            raise RuntimeError(f"Could not load identity from {p}")
        return ident

    # Link callbacks (Reticulum threads)

    def _on_link(self, link: RNS.Link) -> None:
        conn = connection_id_for(link)
        with self._links_lock:
            self._links[conn] = link

        link.set_packet_callback(lambda data, pkt: self._on_packet(conn, data))
        link.set_link_closed_callback(lambda closed_link: self._on_close(conn))
        try:
            link.set_resource_strategy(RNS.Link.ACCEPT_APP)
            link.set_resource_callback(self._resource_advertised)
            link.set_resource_concluded_callback(
                lambda resource: self._resource_concluded(conn, resource)
            )
        except Exception as e:
            self.log.warning("Failed to set resource callbacks conn=%s: %s", conn, e)

        self.log.info("Link established conn=%s", conn)
        if self.router is not None:
            self.router.on_connect(conn)

    def _on_packet(self, conn: str, data: bytes) -> None:
        if self.router is None:
            return
        try:
            self.router.on_packet(conn, bytes(data))
        except Exception:
            self.log.exception("Unhandled error routing packet conn=%s", conn)

    def _on_close(self, conn: str) -> None:
        with self._links_lock:
            self._links.pop(conn, None)
        if self.router is None:
            return
        try:
            self.router.on_disconnect(conn)
        except Exception:
            self.log.exception("Unhandled error closing conn=%s", conn)

    def _resource_advertised(self, resource: RNS.Resource) -> bool:
        size = resource.total_size if hasattr(resource, "total_size") else resource.size
        if size > int(self.config.max_resource_bytes):
            self.log.warning(
                "Rejecting resource (too large: %s > %s)",
                size,
                self.config.max_resource_bytes,
            )
            return False
        return True

    def _resource_concluded(self, conn: str, resource: RNS.Resource) -> None:
        if resource.status != RNS.Resource.COMPLETE:
            self.log.warning(
                "Resource transfer failed conn=%s status=%s", conn, resource.status
            )
            return
        try:
            data = resource.data.read() if hasattr(resource.data, "read") else resource.data
        except Exception as e:
            self.log.error("Failed to read resource data conn=%s: %s", conn, e)
            return
        self._on_packet(conn, bytes(data))

    # Outbound

    def send(self, connection_id: str, event: str, payload: dict[str, Any]) -> None:
        with self._links_lock:
            link = self._links.get(connection_id)
        if link is None:
            return

        data = pack(make_envelope(event, body=payload))
        self.stats.inc("bytes_out", len(data))

        mdu = getattr(link, "MDU", None)
        if mdu is None or len(data) <= mdu:
            try:
                RNS.Packet(link, data).send()
            except OSError as e:
                self.log.warning(
                    "Send failed conn=%s event=%s bytes=%s err=%s",
                    connection_id,
                    event,
                    len(data),
                    e,
                )
            return

        if len(data) > int(self.config.max_resource_bytes):
            self.log.warning(
                "Dropping oversized event conn=%s event=%s bytes=%s",
                connection_id,
                event,
                len(data),
            )
            return

        try:
            RNS.Resource(data, link, advertise=True, auto_compress=False)
        except Exception as e:
            self.log.warning(
                "Resource send failed conn=%s event=%s bytes=%s err=%s",
                connection_id,
                event,
                len(data),
                e,
            )
            return
        self.log.debug(
            "Sent event as resource conn=%s event=%s bytes=%s", connection_id, event, len(data)
        )
