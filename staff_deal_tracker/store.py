from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable


RAW = "raw"
CLEANED = "cleaned"
CLASSIFIED = "classified"
SYSTEM_METRICS = "system_metrics"


class Store(ABC):
    """
    Keyed container shared by the pipeline and the Read API.
    Writers always replace a whole keyed value; `update` is the only read-modify-write.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Atomically replace key with fn(current); returns the new value."""


class MemoryStore(Store):
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        # critical section: nobody can write `key` between the read and the write
        with self._lock:
            value = fn(self._data.get(key, default))
            self._data[key] = value
            return value
