"""In-memory implementation of StoreProtocol, used for tests and ephemeral runs."""

import asyncio
import copy
from typing import Any


class InMemoryStore:
    def __init__(self):
        self._records: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def persist(self, kind: str, record: dict[str, Any]) -> None:
        async with self._lock:
            self._records.setdefault(kind, []).append(copy.deepcopy(record))

    async def query(self, kind: str, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self._lock:
            records = self._records.get(kind, [])
            return [
                copy.deepcopy(r)
                for r in records
                if all(r.get(key) == value for key, value in (filters or {}).items())
            ]
