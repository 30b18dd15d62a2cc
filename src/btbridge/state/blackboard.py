"""
SharedValueStore - Process-wide blackboard for reference-bound ports.

Maps a reference key to the last JSON value written for it. Writes come
from decoded outputs (including feedback hand-offs drained by the tick
loop); reads come from request building. The store lives for one
interpreter session and is cleared whenever a tree is (re)loaded.
"""

import copy
import logging
from threading import Lock
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 256


class SharedValueStore:
    """Thread-safe key/value store for blackboard references.

    Values are deep-copied on the way in and out so that callers never
    share nested JSON structures with the store.

    Example:
        >>> store = SharedValueStore()
        >>> store.set("target", {"x": 1.0})
        >>> store.get("target")
        {'x': 1.0}
    """

    def __init__(self, scope_name: str = "session") -> None:
        if not scope_name:
            raise ValueError("scope_name cannot be empty")
        self._scope_name = scope_name
        self._data: Dict[str, Any] = {}
        self._lock = Lock()

    @property
    def scope_name(self) -> str:
        return self._scope_name

    def _check_key(self, key: str) -> None:
        if not key or not isinstance(key, str):
            raise ValueError("key must be a non-empty string")
        if len(key) > MAX_KEY_LENGTH:
            raise ValueError(f"key too long: {len(key)} > {MAX_KEY_LENGTH}")

    def set(self, key: str, value: Any) -> None:
        """Store the latest value for ``key``."""
        self._check_key(key)
        with self._lock:
            self._data[key] = copy.deepcopy(value)
        logger.debug(f"Blackboard {self._scope_name}: set '{key}'")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Return a copy of the value for ``key`` or ``default``."""
        self._check_key(key)
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it was present."""
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            return True

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
        logger.debug(f"Blackboard {self._scope_name}: cleared")

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole store, for debugging."""
        with self._lock:
            return copy.deepcopy(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __repr__(self) -> str:
        return f"SharedValueStore(scope={self._scope_name!r}, keys={len(self)})"


__all__ = ["SharedValueStore", "MAX_KEY_LENGTH"]
