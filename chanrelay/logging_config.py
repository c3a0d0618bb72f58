from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import RelayRuntimeConfig

_FALLBACK_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_level(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    named = logging.getLevelNamesMapping().get(text)
    if named is not None:
        return named
    return int(text) if text.isdigit() else default


def _log_file_path(cfg: RelayRuntimeConfig, override_file: str | None) -> Path | None:
    # An explicit override of "" disables file logging even if the config sets one.
    raw = override_file if override_file is not None else cfg.log_file
    if raw is None or not str(raw).strip():
        return None
    return Path(os.path.expanduser(str(raw)))


def _open_log_file(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(
    cfg: RelayRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> Path | None:
    """Install the relay's root handlers and return the log file in use, if any.

    Calling it again replaces the handlers installed by the previous call.
    """

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    log_file = _log_file_path(cfg, override_file)
    if log_file is not None:
        handlers.append(_open_log_file(log_file))

    datefmt = cfg.log_datefmt if cfg.log_datefmt and str(cfg.log_datefmt).strip() else None
    formatter = logging.Formatter(fmt=str(cfg.log_format).strip() or _FALLBACK_FORMAT, datefmt=datefmt)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(_parse_level(override_level or cfg.log_level, logging.INFO))

    # Reticulum logs through its own logger when it uses Python logging at all.
    logging.getLogger("RNS").setLevel(_parse_level(cfg.log_rns_level, logging.WARNING))
    logging.captureWarnings(True)
    return log_file
