import logging

import pytest

from chanrelay.config import RelayRuntimeConfig
from chanrelay.logging_config import _parse_level, configure_logging


def test_parse_level() -> None:
    assert _parse_level("debug", logging.INFO) == logging.DEBUG
    assert _parse_level(" warn ", logging.INFO) == logging.WARNING
    assert _parse_level("15", logging.INFO) == 15
    assert _parse_level("", logging.INFO) == logging.INFO
    assert _parse_level("loud", logging.ERROR) == logging.ERROR
    assert _parse_level(None, logging.ERROR) == logging.ERROR
    assert _parse_level(True, logging.ERROR) == logging.ERROR


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    rns = logging.getLogger("RNS")
    saved_rns_level = rns.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)
    rns.setLevel(saved_rns_level)
    logging.captureWarnings(False)


def test_configure_logging_file_and_rns_level(tmp_path, restore_root_logging) -> None:
    root = restore_root_logging
    log_file = tmp_path / "logs" / "relay.log"
    cfg = RelayRuntimeConfig(log_console=False, log_file=str(log_file), log_rns_level="ERROR")

    used = configure_logging(cfg, override_level="DEBUG")

    assert used == log_file
    assert root.level == logging.DEBUG
    assert logging.getLogger("RNS").level == logging.ERROR
    assert len(root.handlers) == 1
    assert log_file.parent.is_dir()


def test_empty_file_override_disables_configured_file(tmp_path, restore_root_logging) -> None:
    root = restore_root_logging
    cfg = RelayRuntimeConfig(log_console=False, log_file=str(tmp_path / "relay.log"))

    assert configure_logging(cfg, override_file="") is None
    assert root.handlers == []
    assert not (tmp_path / "relay.log").exists()
