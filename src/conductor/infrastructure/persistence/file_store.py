"""
File-based Store

Appends records as JSON Lines, one file per record kind:

    {work_dir}/records/{kind}.jsonl

Writes go through aiofiles; a per-kind asyncio.Lock keeps concurrent
appends of the same kind from interleaving.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import aiofiles
import structlog


class FileStore:
    def __init__(self, work_dir: str = ".conductor"):
        self.records_dir = Path(work_dir) / "records"
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self.logger = structlog.get_logger().bind(component="file_store")

    def _get_lock(self, kind: str) -> asyncio.Lock:
        if kind not in self._locks:
            self._locks[kind] = asyncio.Lock()
        return self._locks[kind]

    def _path(self, kind: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in kind)
        return self.records_dir / f"{safe}.jsonl"

    async def persist(self, kind: str, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, default=str)
        async with self._get_lock(kind):
            async with aiofiles.open(self._path(kind), "a", encoding="utf-8") as f:
                await f.write(line + "\n")

    async def query(self, kind: str, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        path = self._path(kind)
        if not path.exists():
            return []
        async with self._get_lock(kind):
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()

        records: list[dict[str, Any]] = []
        for number, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                self.logger.warning("corrupt_record_skipped", kind=kind, line=number, error=str(e))
                continue
            if all(record.get(key) == value for key, value in (filters or {}).items()):
                records.append(record)
        return records
