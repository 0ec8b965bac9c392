from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger("bookbot.storage")


class Storage(Protocol):
    """Key/value string storage injected into the conversation store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def clear(self, key: str) -> None:
        ...


class MemoryStorage:
    """Process-local storage, used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def clear(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileStorage:
    """Storage backed by a single JSON object file on disk."""

    def __init__(self, path: Path) -> None:
        """Purpose: Initialize file storage and hydrate cached values from disk.
        Inputs/Outputs: Input is the JSON file path; no return value.
        Side Effects / State: Reads the file once and caches its key/value pairs.
        Dependencies: Calls _load; uses json and pathlib.
        Failure Modes: Missing or malformed files leave an empty cache.
        If Removed: Conversations are lost on restart.
        Testing Notes: Write a value, build a new instance, and read it back.
        """
        # Keep the backing file path and preload persisted values.
        self._path = path
        self._values: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted key/value pairs from disk into memory.
        Inputs/Outputs: Reads self._path; no return value.
        Side Effects / State: Populates the _values cache.
        Dependencies: Uses json.loads and Path.read_text.
        Failure Modes: Missing file, IO errors or JSONDecodeError result in an empty cache.
        If Removed: Stored conversations are never restored on startup.
        Testing Notes: Corrupt JSON should not crash; valid JSON should hydrate the cache.
        """
        # Read and decode persisted JSON if present.
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("storage file unreadable path=%s; starting empty", self._path)
            return
        if not isinstance(data, dict):
            logger.warning("storage file has unexpected shape path=%s; starting empty", self._path)
            return
        self._values = {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _persist(self) -> None:
        """Purpose: Write the cached key/value pairs to disk.
        Inputs/Outputs: Writes self._path; no return value.
        Side Effects / State: Creates the parent directory and replaces the file.
        Dependencies: Uses json.dumps and Path.write_text.
        Failure Modes: IO errors raise exceptions (not caught here).
        If Removed: Appended messages are not durable across restarts.
        Testing Notes: Ensure file content matches the in-memory values.
        """
        # Flush synchronously; a temp file keeps the previous snapshot intact on crash.
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._persist()

    def clear(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._persist()
