from __future__ import annotations

# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia
import json
from pathlib import Path
from typing import Any, TypeVar

from pycarrier.lib.types import PathLike

T = TypeVar("T")


class ConfigManager:
    """
    JSON-backed settings store.

    Without an explicit path the packaged ``pycarrier/settings/system.json``
    is used. Lookups walk nested objects by key; any miss yields the
    fallback instead of raising.
    """

    SETTINGS_DIR: str   = "settings"
    SETTINGS_FILE: str  = "system.json"

    def __init__(self, config_path: PathLike | None = None) -> None:
        """
        Raises:
            FileNotFoundError: If the settings file does not exist.
            json.JSONDecodeError: If the file is not valid JSON.
        """
        if config_path:
            self._path = Path(config_path)
        else:
            self._path = Path(__file__).resolve().parent.parent / self.SETTINGS_DIR / self.SETTINGS_FILE

        self._data: dict[str, Any] = {}
        self._load()

    def get_config_path(self) -> str:
        return str(self._path)

    def _load(self) -> None:
        if not self._path.is_file():
            raise FileNotFoundError(f"Config file not found: {self._path}")
        self._data = json.loads(self._path.read_text(encoding="utf-8"))

    def get(self, *keys: str, fallback: T | None = None) -> T | Any | None:  # noqa: ANN401
        """
        Walk ``keys`` into the nested settings.

        Example:
            ``get("CarrierHealthMonitor", "snrThresholds", "64QAM")``
        """
        node: Any = self._data
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return fallback
            node = node[key]
        return node

    def reload(self) -> None:
        """Re-read the file, picking up edits made since the last load."""
        self._load()

    def as_dict(self) -> dict[str, Any]:
        """Shallow copy of the whole settings tree."""
        return dict(self._data)

    def save(self, new_config: dict[str, Any]) -> None:
        """Replace the settings in memory and on disk."""
        self._data = new_config
        self._path.write_text(json.dumps(new_config, indent=4), encoding="utf-8")
