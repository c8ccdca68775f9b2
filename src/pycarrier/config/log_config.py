# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pycarrier.lib.types import FileNameStr, PathLike
from pycarrier.version import __version__


class LoggerConfigurator:
    """
    Attach the monitor's log handlers to the root logger.

    Every class in the package logs through ``logging.getLogger(<ClassName>)``,
    so configuring the root logger once at process start is enough. The
    handlers installed here are tracked and can be detached with ``close()``.
    """

    FORMAT: str             = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    ROTATE_MAX_BYTES: int   = 10 * 1024 * 1024
    ROTATE_BACKUPS: int     = 5
    BANNER: str             = "==== PyCarrier Monitor Starting ===="

    def __init__(self,
                 log_dir: PathLike,
                 log_filename: FileNameStr,
                 level: str = "INFO",
                 to_console: bool = False,
                 rotate: bool = False) -> None:
        """
        Args:
            log_dir: Directory for the log file; created if missing.
            log_filename: Log file name, e.g. ``pycarrier.log``.
            level: Level name (case-insensitive). Unknown names fall back to INFO.
            to_console: Also write to stderr.
            rotate: Roll the file at 10 MB, keeping 5 backups.
        """
        self.log_path = Path(log_dir) / log_filename
        resolved = logging.getLevelName(level.upper())
        self.level: int = resolved if isinstance(resolved, int) else logging.INFO
        self.to_console = to_console
        self.rotate = rotate
        self.handlers: list[logging.Handler] = []

        self._install()

    def _file_handler(self) -> logging.Handler:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if self.rotate:
            return RotatingFileHandler(self.log_path,
                                       maxBytes=self.ROTATE_MAX_BYTES,
                                       backupCount=self.ROTATE_BACKUPS,
                                       encoding="utf-8")
        return logging.FileHandler(self.log_path, encoding="utf-8")

    def _install(self) -> None:
        formatter = logging.Formatter(self.FORMAT)
        self.handlers.append(self._file_handler())
        if self.to_console:
            self.handlers.append(logging.StreamHandler(sys.stderr))

        root = logging.getLogger()
        root.setLevel(self.level)
        for handler in self.handlers:
            handler.setFormatter(formatter)
            root.addHandler(handler)

        root.info(f"{self.BANNER} v{__version__} (level={logging.getLevelName(self.level)}, file={self.log_path})")

    def close(self) -> None:
        """Detach and close the handlers installed by this configurator."""
        root = logging.getLogger()
        for handler in self.handlers:
            root.removeHandler(handler)
            handler.close()
        self.handlers.clear()
