"""File-backed key/value storage for cart and customer state."""

import json
import os
from pathlib import Path
from typing import Any, Optional
import logging

logger = logging.getLogger(__name__)


class LocalStorage:
    """Persists small JSON values under fixed keys, like browser local storage."""

    def __init__(self, storage_file: Optional[str] = None) -> None:
        """
        Initialize storage.

        Args:
            storage_file: Path to the JSON file (default: ~/.mums_storage.json)
        """
        if storage_file is None:
            storage_file = str(Path.home() / ".mums_storage.json")
        self.storage_file = storage_file
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        """Load saved values from file."""
        if os.path.exists(self.storage_file):
            try:
                with open(self.storage_file) as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    logger.debug(f"Loaded local storage from {self.storage_file}")
                    return data
                logger.warning(f"Ignoring malformed storage file {self.storage_file}")
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Could not load storage: {e}")
        return {}

    def _save(self) -> None:
        with open(self.storage_file, "w") as f:
            json.dump(self._data, f, indent=2, default=str)
        os.chmod(self.storage_file, 0o600)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a stored value."""
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value and write it to disk."""
        self._data[key] = value
        self._save()

    def remove(self, key: str) -> None:
        """Delete a key if present."""
        if key in self._data:
            del self._data[key]
            self._save()

    def __contains__(self, key: str) -> bool:
        return key in self._data
