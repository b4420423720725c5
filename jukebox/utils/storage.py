#!/usr/bin/env python3
"""
💾 Key-value persistence for session state.

The token manager treats storage as a dumb string-keyed store. Two
implementations ship: an in-memory one and a JSON file written atomically.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Optional, Union


class KeyValueStore(ABC):
    """Async string store interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    async def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            await self.remove(key)


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Single JSON object on disk, replaced atomically on every write."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._logger = logging.getLogger('jukebox.storage')
        self._data: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
            self._data = {str(k): str(v) for k, v in raw.items()} if isinstance(raw, dict) else {}
        except FileNotFoundError:
            self._data = {}
        except (OSError, ValueError) as exc:
            self._logger.warning("Could not read session store %s: %s", self.path, exc)
            self._data = {}
        return self._data

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(self._load(), handle, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    async def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._save()

    async def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save()

    async def remove_many(self, keys: Iterable[str]) -> None:
        data = self._load()
        changed = False
        for key in keys:
            if key in data:
                del data[key]
                changed = True
        if changed:
            self._save()
