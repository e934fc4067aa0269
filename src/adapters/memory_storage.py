"""In-memory storage adapter for dry runs and tests."""

from __future__ import annotations

from typing import Iterator, Optional


class MemoryStorage:
    """Dict-backed KeyValueStore; nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def list_by_prefix(self, prefix: str) -> Iterator[str]:
        for key in sorted(self.data):
            if key.startswith(prefix):
                yield key
