# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from pycarrier.config.log_config import LoggerConfigurator
from pycarrier.lib.types import FileNameStr


@pytest.fixture(autouse=True)
def _restore_root_level(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    monkeypatch.setattr(root, "level", root.level)


def test_file_logging_with_banner(tmp_path: Path) -> None:
    log_dir = tmp_path / "nested" / "logs"
    configurator = LoggerConfigurator(log_dir, FileNameStr("monitor.log"), level="debug")
    try:
        logging.getLogger("CarrierHealthMonitor").debug("Carrier 3 modulation QPSK -> 16QAM")
        for handler in configurator.handlers:
            handler.flush()

        text = (log_dir / "monitor.log").read_text(encoding="utf-8")
        assert "==== PyCarrier Monitor Starting ====" in text
        assert "[DEBUG] CarrierHealthMonitor: Carrier 3 modulation QPSK -> 16QAM" in text
        assert logging.getLogger().level == logging.DEBUG
    finally:
        configurator.close()


def test_rotation_and_console_handlers(tmp_path: Path) -> None:
    configurator = LoggerConfigurator(tmp_path, FileNameStr("pycarrier.log"), to_console=True, rotate=True)
    try:
        assert isinstance(configurator.handlers[0], RotatingFileHandler)
        assert configurator.handlers[0].maxBytes == 10 * 1024 * 1024
        assert len(configurator.handlers) == 2
    finally:
        configurator.close()

    root = logging.getLogger()
    assert all(h not in root.handlers for h in configurator.handlers)
    assert configurator.handlers == []


def test_unknown_level_defaults_to_info(tmp_path: Path) -> None:
    configurator = LoggerConfigurator(tmp_path, FileNameStr("pycarrier.log"), level="chatty")
    try:
        assert configurator.level == logging.INFO
    finally:
        configurator.close()
