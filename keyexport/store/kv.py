"""Key-value storage backends."""

from __future__ import annotations

import json
import logging
import pathlib
from collections.abc import Iterable
from typing import Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def keys(self) -> Iterable[str]: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, data: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def keys(self) -> list[str]:
        return list(self._data)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """A JSON object on disk, typically an export of the browser's storage."""

    def __init__(self, path: pathlib.Path) -> None:
        self.path = path
        self._data: dict[str, str] = {}
        if path.exists():
            try:
                loaded = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.warning("Invalid storage file %s; starting empty", path)
            else:
                if isinstance(loaded, dict):
                    self._data = {str(k): v for k, v in loaded.items() if isinstance(v, str)}
                else:
                    logger.warning("Storage file %s is not an object; starting empty", path)

    def keys(self) -> list[str]:
        return list(self._data)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data), encoding="utf-8")
