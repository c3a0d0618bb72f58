from __future__ import annotations

import os
from pathlib import Path


def default_home() -> Path:
    override = os.environ.get("CHANRELAY_HOME")
    if override:
        return Path(override)
    return Path.home() / ".chanrelay"


def default_config_path() -> Path:
    return default_home() / "chanrelay.toml"


def default_identity_path() -> Path:
    return default_home() / "relay_identity"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass
