from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import RelayRuntimeConfig, load_config_file
from .logging_config import configure_logging
from .paths import default_config_path, default_identity_path, ensure_private_dir


def _default_config_text(identity_path: str) -> str:
    defaults = RelayRuntimeConfig()
    return f"""# chanrelay configuration (TOML)
#
# This file was created on first run.
# Edit it, then start chanrelay again.

[relay]

# Optional: Reticulum configuration directory.
# If left unset, Reticulum will choose its default (usually ~/.reticulum).
configdir = ""

# Where chanrelay stores its persistent identity (Reticulum Identity file).
identity_path = {identity_path!r}

# Destination name to host the relay on.
dest_name = {defaults.dest_name!r}

# announce_on_start: send a single announce right after startup.
# announce_period_s: if >0, periodically re-announce.
announce_on_start = true
announce_period_s = 0.0

relay_name = {defaults.relay_name!r}

# Channel policy.
# Empty channels are deleted once they have stayed empty for channel_grace_s.
max_channel_name_len = {defaults.max_channel_name_len}
history_capacity = {defaults.history_capacity}
channel_grace_s = {defaults.channel_grace_s}

# Message policy.
# denylist: case-insensitive substrings that cause a message to be rejected.
# emote_names: known :name: tokens; leave empty to count every :name: token.
max_message_chars = {defaults.max_message_chars}
max_embedded_tokens = {defaults.max_embedded_tokens}
denylist = []
emote_names = []

# Typing indicators.
# typing_stale_s applies whenever a typing snapshot is broadcast;
# the background sweep runs every typing_sweep_interval_s and drops entries
# older than typing_sweep_stale_s.
typing_stale_s = {defaults.typing_stale_s}
typing_sweep_stale_s = {defaults.typing_sweep_stale_s}
typing_sweep_interval_s = {defaults.typing_sweep_interval_s}

# Per-connection inbound event limit.
rate_limit_msgs_per_minute = {defaults.rate_limit_msgs_per_minute}

# Events larger than the link MTU are sent as RNS.Resource up to this size.
max_resource_bytes = {defaults.max_resource_bytes}

# Log a stats summary every N seconds (0 disables).
stats_log_interval_s = 0.0

[logging]

# Log level for chanrelay itself.
level = "INFO"

# Log level for Reticulum/RNS Python logging (if used by your install).
rns_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""


def _ensure_first_run_files(config_path: str, identity_path: str) -> bool:
    created_any = False

    if not os.path.exists(config_path):
        cfg_dir = os.path.dirname(config_path)
        if cfg_dir:
            ensure_private_dir(Path(cfg_dir))
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(_default_config_text(identity_path))
        created_any = True

    if not os.path.exists(identity_path):
        import RNS

        storage_dir = os.path.dirname(identity_path)
        if storage_dir:
            ensure_private_dir(Path(storage_dir))
        ident = RNS.Identity()
        ident.to_file(identity_path)
        try:
            os.chmod(identity_path, 0o600)
        except OSError:
            pass
        created_any = True

    return created_any


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chanrelay", description="Run a channel chat relay")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--configdir", default=None, help="Reticulum config directory")
    p.add_argument(
        "--identity",
        default=str(default_identity_path()),
        help="Path to relay identity file (created on first run)",
    )
    p.add_argument(
        "--dest-name", default=None, help="Destination app name (default: chanrelay.relay)"
    )
    p.add_argument(
        "--no-announce",
        action="store_true",
        help="Disable announce on start (does not affect periodic announce)",
    )
    p.add_argument(
        "--announce-period",
        type=float,
        default=None,
        help="Periodic announce interval seconds (0 disables)",
    )
    p.add_argument(
        "--history-capacity",
        type=int,
        default=None,
        help="Messages kept per channel for replay on join",
    )
    p.add_argument(
        "--channel-grace",
        type=float,
        default=None,
        help="Seconds an empty channel is kept before it is deleted",
    )
    p.add_argument(
        "--rate-limit-msgs-per-minute",
        type=int,
        default=None,
        help="Per-connection event rate limit",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    return p


def build_config(args: argparse.Namespace) -> RelayRuntimeConfig:
    cfg = RelayRuntimeConfig(configdir=args.configdir, identity_path=str(args.identity))
    if args.config and os.path.exists(args.config):
        cfg = load_config_file(cfg, str(args.config))

    if args.configdir is not None:
        cfg = replace(cfg, configdir=args.configdir)
    if args.dest_name is not None:
        cfg = replace(cfg, dest_name=args.dest_name)
    if args.no_announce:
        cfg = replace(cfg, announce_on_start=False)
    if args.announce_period is not None:
        cfg = replace(cfg, announce_period_s=float(args.announce_period))
    if args.history_capacity is not None:
        cfg = replace(cfg, history_capacity=int(args.history_capacity))
    if args.channel_grace is not None:
        cfg = replace(cfg, channel_grace_s=float(args.channel_grace))
    if args.rate_limit_msgs_per_minute is not None:
        cfg = replace(cfg, rate_limit_msgs_per_minute=int(args.rate_limit_msgs_per_minute))
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    identity_path = str(args.identity)

    if _ensure_first_run_files(config_path, identity_path):
        print(
            "Created default chanrelay files. Edit the configuration before starting:\n"
            f"- Config:   {config_path}\n"
            f"- Identity: {identity_path}\n"
            "\nThen re-run chanrelay.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    from .service import RelayService

    svc = RelayService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
