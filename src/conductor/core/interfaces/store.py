"""
Store Protocol

Persistence of execution records. The engine only ever appends records and
queries them back by equality filters; the storage schema belongs to the
implementation.

Record kinds written by the engine:
- ``execution``: execution lifecycle snapshots
- ``tool_execution``: one record per tool invocation
- ``reasoning_step``: reasoning narration
- ``sub_agent_execution``: sub-agent start/completion
- ``workflow``: top-level workflow outcomes
"""

from typing import Any, Protocol


class StoreProtocol(Protocol):
    async def persist(self, kind: str, record: dict[str, Any]) -> None:
        ...

    async def query(self, kind: str, filters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        ...
