from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from .constants import (
    CHANNEL_GRACE_S,
    CHANNEL_NAME_MAX_CHARS,
    HISTORY_CAPACITY,
    MAX_EMBEDDED_TOKENS,
    MESSAGE_MAX_CHARS,
    TYPING_STALE_S,
    TYPING_SWEEP_INTERVAL_S,
    TYPING_SWEEP_STALE_S,
)


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    configdir: str | None = None
    identity_path: str | None = None
    dest_name: str = "chanrelay.relay"
    announce_on_start: bool = True
    announce_period_s: float = 0.0
    relay_name: str = "chanrelay"
    max_channel_name_len: int = CHANNEL_NAME_MAX_CHARS
    max_message_chars: int = MESSAGE_MAX_CHARS
    max_embedded_tokens: int = MAX_EMBEDDED_TOKENS
    history_capacity: int = HISTORY_CAPACITY
    channel_grace_s: float = CHANNEL_GRACE_S
    typing_stale_s: float = TYPING_STALE_S
    typing_sweep_stale_s: float = TYPING_SWEEP_STALE_S
    typing_sweep_interval_s: float = TYPING_SWEEP_INTERVAL_S
    denylist: tuple[str, ...] = ()
    emote_names: tuple[str, ...] = ()
    rate_limit_msgs_per_minute: int = 240
    max_resource_bytes: int = 256 * 1024
    stats_log_interval_s: float = 0.0
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "rns_level": "log_rns_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_TUPLE_KEYS = ("denylist", "emote_names")

_EMPTY_IS_NONE = ("configdir", "identity_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_config_data(cfg: RelayRuntimeConfig, data: dict[str, Any]) -> RelayRuntimeConfig:
    """Overlay parsed TOML data onto ``cfg``.

    Keys may live at the top level or under ``[relay]``; the ``[logging]``
    table uses short names (``level``, ``file``...). Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return cfg

    relay = data.get("relay")
    if isinstance(relay, dict):
        data = {**data, **relay}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped = {
            field: log_table[key] for key, field in _LOGGING_KEYS.items() if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # Where the file came from is decided by the caller, not by the file.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _TUPLE_KEYS:
        if key not in updates:
            continue
        value = updates[key]
        if isinstance(value, str):
            value = [value]
        elif not isinstance(value, (list, tuple)):
            raise ValueError(f"{key} must be a string or a list of strings")
        updates[key] = tuple(str(x) for x in value)

    for key in _EMPTY_IS_NONE:
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(cfg, **updates) if updates else cfg


def load_config_file(cfg: RelayRuntimeConfig, path: str) -> RelayRuntimeConfig:
    return replace(apply_config_data(cfg, load_toml(path)), config_path=path)
