from __future__ import annotations

import threading
import time
from typing import Any


class TTLCache:
    def __init__(self, clock=time.monotonic) -> None:
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> tuple[Any, float] | None:
        record = self._data.get(key)
        if not record:
            return None
        if self._clock() > record[1]:
            self._data.pop(key, None)
            return None
        return record

    def get(self, key: str) -> Any | None:
        with self._lock:
            record = self._live(key)
            return record[0] if record else None

    def set(self, key: str, value: Any, ttl_seconds: float = 30) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def add(self, key: str, value: Any, ttl_seconds: float = 30) -> bool:
        """Store ``value`` only if ``key`` holds no live entry. Returns whether it was stored."""
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl_seconds)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
