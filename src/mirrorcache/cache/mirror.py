"""In-process mirror of backend entries.

The mirror lives as long as the cache facade that owns it (one request or
unit of work). It has no eviction and no TTL: entries appear on successful
writes and read-through fetches and disappear on delete or flush.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from mirrorcache.cache.values import clone_value


class RuntimeMirror:
    """Mapping of derived key to value, with copy-on-read/write for records."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = clone_value(value)

    def update(self, entries: Mapping[str, Any]) -> None:
        for key, value in entries.items():
            self.put(key, value)

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, found)``; the value is a copy for records."""
        if key not in self._entries:
            return None, False
        return clone_value(self._entries[key]), True

    def peek(self, key: str) -> Any:
        """Stored value without copying, or None."""
        return self._entries.get(key)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))


_MISSING = object()
