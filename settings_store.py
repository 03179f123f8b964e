"""Settings persistence."""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Set

from constants import SETTING_ENABLED_DEVICE_IDS

logger = logging.getLogger(__name__)


class SettingsStore:
    """Key/value settings kept in a JSON file."""

    def __init__(self, path: str):
        self.path = path
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in settings file '{self.path}': {e}")
        if not isinstance(data, dict):
            raise ValueError(f"Settings file '{self.path}' must contain an object")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any):
        """Persist a value. The in-memory copy only changes once the file is written."""
        data = dict(self._data)
        data[key] = value
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError):
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        self._data = data
        logger.debug(f"Saved setting '{key}'")


class EnabledDeviceSet:
    """Device ids exposed to Matter, persisted on every change."""

    def __init__(self, store: SettingsStore, key: str = SETTING_ENABLED_DEVICE_IDS):
        self.store = store
        self.key = key
        self._ids: Set[str] = set(store.get(key) or [])
        self._lock = asyncio.Lock()

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def ids(self) -> Set[str]:
        return set(self._ids)

    async def add(self, device_id: str) -> bool:
        async with self._lock:
            if device_id in self._ids:
                return False
            self._persist(self._ids | {device_id})
            return True

    async def discard(self, device_id: str) -> bool:
        async with self._lock:
            if device_id not in self._ids:
                return False
            self._persist(self._ids - {device_id})
            return True

    def _persist(self, ids: Set[str]):
        self.store.set(self.key, sorted(ids))
        self._ids = ids
