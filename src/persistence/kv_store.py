"""
Local key-value storage for emergency snapshots.

Values are strings (JSON documents). ``FileKeyValueStore`` keeps one file per
key under ``~/.amc/emergency/``; ``InMemoryKeyValueStore`` backs tests and
short-lived processes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote, unquote

from loguru import logger

# Default snapshot directory
EMERGENCY_DIR = Path.home() / ".amc" / "emergency"


class KeyValueStore(Protocol):
    """get/set/delete by string key."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileKeyValueStore:
    """
    One file per key.

    Keys are percent-encoded into file names ({key}.json), so distinct keys
    never share a file and ``keys()`` returns the original keys.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = directory or EMERGENCY_DIR
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)
        logger.debug("Wrote {} bytes to {}", len(value), path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> list[str]:
        return sorted(unquote(path.stem) for path in self.directory.glob("*.json"))
