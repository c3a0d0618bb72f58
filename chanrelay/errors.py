"""Relay error taxonomy.

Every error raised by the registry or the validators derives from
``RelayError``. The router turns them into a unicast ``error`` event for the
offending connection; none of them is fatal to the process.
"""

from __future__ import annotations


class RelayError(ValueError):
    """Base class for errors reported back to a single connection."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """Malformed display name, channel name, message body or reply."""

    def __init__(self, field: str, reason: str, message: str | None = None) -> None:
        super().__init__(message or f"{field}: {reason}")
        self.field = field
        self.reason = reason


class NameTaken(RelayError):
    def __init__(self, display_name: str, channel_name: str) -> None:
        super().__init__(f"name {display_name!r} is already taken in #{channel_name}")
        self.display_name = display_name
        self.channel_name = channel_name


class NotInChannel(RelayError):
    def __init__(self, message: str = "You must join a channel first") -> None:
        super().__init__(message)
