"""Input normalization for display names, channel names, bodies and replies.

All functions are pure: they never touch registry state or perform I/O, so
they can run before or inside the registry lock.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .colors import color_for
from .constants import (
    CHANNEL_NAME_MAX_CHARS,
    DISPLAY_NAME_MAX_CHARS,
    DISPLAY_NAME_MIN_CHARS,
    MAX_EMBEDDED_TOKENS,
    MESSAGE_MAX_CHARS,
    R_DENYLISTED,
    R_EMPTY,
    R_INVALID,
    R_TOO_LONG,
    R_TOO_MANY_TOKENS,
    R_TOO_SHORT,
    REPLY_BODY_MAX_CHARS,
)
from .errors import ValidationError
from .models import ReplyQuote

_CHANNEL_STRIP = re.compile(r"[^A-Za-z0-9_-]")
_TOKEN = re.compile(r":([A-Za-z0-9_]+):")


@dataclass(frozen=True)
class MessagePolicy:
    max_chars: int = MESSAGE_MAX_CHARS
    max_tokens: int = MAX_EMBEDDED_TOKENS
    denylist: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, cfg) -> MessagePolicy:
        return cls(
            max_chars=int(cfg.max_message_chars),
            max_tokens=int(cfg.max_embedded_tokens),
            denylist=tuple(w.strip().lower() for w in cfg.denylist if w.strip()),
        )


def normalize_display_name(raw) -> str:
    if not isinstance(raw, str):
        raise ValidationError("displayName", R_INVALID, "Display name is required")

    s = raw.strip()
    if "\n" in s or "\r" in s or "\x00" in s:
        raise ValidationError("displayName", R_INVALID, "Display name contains invalid characters")
    if len(s) < DISPLAY_NAME_MIN_CHARS:
        raise ValidationError(
            "displayName",
            R_TOO_SHORT,
            f"Display name must be at least {DISPLAY_NAME_MIN_CHARS} characters",
        )
    if len(s) > DISPLAY_NAME_MAX_CHARS:
        raise ValidationError(
            "displayName",
            R_TOO_LONG,
            f"Display name must be at most {DISPLAY_NAME_MAX_CHARS} characters",
        )

    # Length is not re-checked after stripping.
    return s.replace("<", "").replace(">", "")


def normalize_channel_name(raw, *, max_len: int = CHANNEL_NAME_MAX_CHARS) -> str:
    if not isinstance(raw, str):
        raise ValidationError("channelName", R_INVALID, "Channel name is required")

    s = _CHANNEL_STRIP.sub("", raw.strip()).lower()
    if not s:
        raise ValidationError("channelName", R_EMPTY, "Channel name must not be empty")
    if max_len > 0 and len(s) > max_len:
        raise ValidationError(
            "channelName", R_TOO_LONG, f"Channel name must be at most {max_len} characters"
        )
    return s


def normalize_message_body(
    raw, *, max_chars: int = MESSAGE_MAX_CHARS, denylist: Iterable[str] = ()
) -> str:
    if not isinstance(raw, str):
        raise ValidationError("body", R_INVALID, "Message must be text")

    s = raw.strip()
    if not s:
        raise ValidationError("body", R_EMPTY, "Message cannot be empty")
    if len(s) > max_chars:
        raise ValidationError(
            "body", R_TOO_LONG, f"Message must be at most {max_chars} characters"
        )

    lowered = s.lower()
    for word in denylist:
        if word and word.lower() in lowered:
            raise ValidationError("body", R_DENYLISTED, "Message contains blocked words")
    return s


def count_embedded_tokens(body: str, known_names: Iterable[str] | None = None) -> int:
    """Count ``:name:`` references in ``body``.

    With ``known_names`` only catalog entries count; without a catalog every
    well-formed token does.
    """
    names = set(known_names) if known_names else None
    count = 0
    for m in _TOKEN.finditer(body):
        if names is None or m.group(1) in names:
            count += 1
    return count


def check_embedded_tokens(
    body: str, known_names: Iterable[str] | None, *, max_tokens: int = MAX_EMBEDDED_TOKENS
) -> int:
    count = count_embedded_tokens(body, known_names)
    if count > max_tokens:
        raise ValidationError(
            "body", R_TOO_MANY_TOKENS, f"Too many emotes (max {max_tokens} per message)"
        )
    return count


def _reply_display_name(raw) -> str:
    # Join strips angle brackets after its length check, so a stored name can
    # be shorter than the join minimum. Quotes only need to be non-empty.
    if not isinstance(raw, str):
        raise ValidationError("replyTo", R_INVALID, "Invalid reply")
    s = raw.strip()
    if not s or len(s) > DISPLAY_NAME_MAX_CHARS or "\n" in s or "\r" in s or "\x00" in s:
        raise ValidationError("replyTo", R_INVALID, "Invalid reply")
    name = s.replace("<", "").replace(">", "")
    if not name:
        raise ValidationError("replyTo", R_INVALID, "Invalid reply")
    return name


def normalize_reply(raw, *, denylist: Iterable[str] = ()) -> ReplyQuote | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ValidationError("replyTo", R_INVALID, "Invalid reply")

    name = _reply_display_name(raw.get("displayName"))

    body = raw.get("body")
    if not isinstance(body, str) or not body.strip():
        raise ValidationError("replyTo", R_INVALID, "Invalid reply")
    body = body.strip()[:REPLY_BODY_MAX_CHARS]

    lowered = body.lower()
    if any(w and w.lower() in lowered for w in denylist):
        raise ValidationError("replyTo", R_DENYLISTED, "Reply contains blocked words")

    return ReplyQuote(display_name=name, body=body, color_tag=color_for(name))


def validate_message(
    raw_body,
    raw_reply,
    policy: MessagePolicy,
    known_names: Iterable[str] | None = None,
) -> tuple[str, ReplyQuote | None]:
    body = normalize_message_body(raw_body, max_chars=policy.max_chars, denylist=policy.denylist)
    check_embedded_tokens(body, known_names, max_tokens=policy.max_tokens)
    reply = normalize_reply(raw_reply, denylist=policy.denylist)
    return body, reply
