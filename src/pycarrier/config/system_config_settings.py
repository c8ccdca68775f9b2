# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
from typing import Any

from pycarrier.config.config_manager import ConfigManager
from pycarrier.config.monitor_config import MonitorConfig
from pycarrier.lib.types import FileNameStr, PathLike

_TRUE_WORDS: frozenset[str]  = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS: frozenset[str] = frozenset({"0", "false", "no", "off"})


class SystemConfigSettings:
    """
    Class-level accessors over the process-wide settings file.

    Every accessor reads through ``_cfg`` on each call, so ``reload()`` or
    ``use_config_file()`` take effect immediately. Scalar lookups never
    raise: a missing or malformed value is logged and replaced by its
    default. Only ``monitor_config()`` raises, when the carrier policy
    itself is invalid.
    """
    _cfg        = ConfigManager()
    _logger     = logging.getLogger("SystemConfigSettings")

    MONITOR_SECTION: str    = "CarrierHealthMonitor"
    ESTIMATOR_SECTION: str  = "SignalQualityEstimator"
    LOGGING_SECTION: str    = "logging"

    DEFAULTS: dict[str, Any] = {
        "SignalQualityEstimator.buffer_size": 100,
        "logging.log_level":                  "INFO",
        "logging.log_dir":                    "logs",
        "logging.log_filename":               "pycarrier.log",
        "logging.to_console":                 False,
        "logging.rotate":                     False,
    }

    @classmethod
    def use_config_file(cls, config_path: PathLike) -> None:
        """Point every accessor at a different JSON file."""
        cls._cfg = ConfigManager(config_path=str(config_path))

    @classmethod
    def config_path(cls) -> str:
        return cls._cfg.get_config_path()

    @classmethod
    def reload(cls) -> None:
        cls._cfg.reload()

    @classmethod
    def _lookup(cls, section: str, key: str) -> tuple[str, Any, Any]:
        """Return ``(dotted_key, raw_value, default)`` for one setting."""
        dotted = f"{section}.{key}"
        default = cls.DEFAULTS[dotted]
        raw = cls._cfg.get(section, key)
        if raw is None:
            cls._logger.error("Missing configuration value for '%s'; using default %r", dotted, default)
        return dotted, raw, default

    @classmethod
    def _text(cls, section: str, key: str) -> str:
        dotted, raw, default = cls._lookup(section, key)
        match raw:
            case None:
                return default
            case "":
                cls._logger.error("Empty configuration value for '%s'; using default %r", dotted, default)
                return default
            case str():
                return raw
        coerced = str(raw)
        cls._logger.error("Non-string configuration value for '%s': %r; using %r", dotted, raw, coerced)
        return coerced

    @classmethod
    def _integer(cls, section: str, key: str) -> int:
        dotted, raw, default = cls._lookup(section, key)
        if raw is None:
            return default
        try:
            return int(raw)
        except (TypeError, ValueError):
            cls._logger.error("Invalid integer configuration value for '%s': %r; using default %r",
                              dotted, raw, default)
            return default

    @classmethod
    def _flag(cls, section: str, key: str) -> bool:
        dotted, raw, default = cls._lookup(section, key)
        if raw is None:
            return default
        if isinstance(raw, bool):
            return raw

        word = str(raw).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        cls._logger.error("Invalid boolean configuration value for '%s': %r; using default %r",
                          dotted, raw, default)
        return default

    @classmethod
    def monitor_config(cls) -> MonitorConfig:
        """
        Build the MonitorConfig from the ``CarrierHealthMonitor`` section.

        A missing or non-object section yields the built-in defaults.

        Raises:
            pydantic.ValidationError: If the section holds an invalid policy.
        """
        section: Any = cls._cfg.get(cls.MONITOR_SECTION)
        if section is None:
            cls._logger.error("Missing configuration section '%s'; using monitor defaults", cls.MONITOR_SECTION)
            return MonitorConfig()
        if not isinstance(section, dict):
            cls._logger.error("Configuration section '%s' is not an object: %r; using monitor defaults",
                              cls.MONITOR_SECTION, section)
            return MonitorConfig()
        return MonitorConfig.model_validate(section)

    @classmethod
    def estimator_buffer_size(cls) -> int:
        return cls._integer(cls.ESTIMATOR_SECTION, "buffer_size")

    @classmethod
    def log_level(cls) -> str:
        return cls._text(cls.LOGGING_SECTION, "log_level")

    @classmethod
    def log_dir(cls) -> str:
        return cls._text(cls.LOGGING_SECTION, "log_dir")

    @classmethod
    def log_filename(cls) -> FileNameStr:
        return FileNameStr(cls._text(cls.LOGGING_SECTION, "log_filename"))

    @classmethod
    def log_to_console(cls) -> bool:
        return cls._flag(cls.LOGGING_SECTION, "to_console")

    @classmethod
    def log_rotate(cls) -> bool:
        return cls._flag(cls.LOGGING_SECTION, "rotate")
