"""Value types shared by the registry, the validators and the wire layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ReplyQuote:
    """Denormalized snapshot of the quoted message; never a live reference."""

    display_name: str
    body: str
    color_tag: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "body": self.body,
            "colorTag": self.color_tag,
        }


@dataclass(frozen=True)
class Message:
    id: str
    display_name: str
    body: str
    timestamp: int
    channel_name: str
    color_tag: str
    reply_to: ReplyQuote | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "displayName": self.display_name,
            "body": self.body,
            "timestamp": self.timestamp,
            "channelName": self.channel_name,
            "colorTag": self.color_tag,
        }
        if self.reply_to is not None:
            payload["replyTo"] = self.reply_to.to_payload()
        return payload


@dataclass(frozen=True)
class Member:
    connection_id: str
    display_name: str
    color_tag: str
    joined_at: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "colorTag": self.color_tag,
            "joinedAt": self.joined_at,
        }


@dataclass
class Session:
    connection_id: str
    display_name: str
    color_tag: str
    channel_name: str | None = None
