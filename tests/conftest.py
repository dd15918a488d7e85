"""
Shared test doubles for the engine.

ScriptedProvider replays a fixed list of model turns, RecordingSink keeps
every emitted event, and FakeLoop lets sub-agent tests decide per agent how
an execution behaves without a reasoning provider.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from conductor.core.domain.events import EventType, StreamEvent
from conductor.core.domain.models import AgentIdentity, Report, ReportStatus, Task
from conductor.infrastructure.persistence.memory_store import InMemoryStore


class ScriptedProvider:
    """
    Non-streaming reasoning provider returning scripted turns.

    Each item is a response string, a full result dict, an exception to
    raise, or an async callable producing one of those.
    """

    def __init__(self, responses: list[Any], default: str = "done"):
        self.responses = list(responses)
        self.default = default
        self.calls: list[list[dict[str, Any]]] = []
        self.system_prompts: list[str | None] = []

    async def complete(self, messages, system_prompt=None, temperature=0.2, max_tokens=None):
        self.calls.append([dict(m) for m in messages])
        self.system_prompts.append(system_prompt)
        item = self.responses.pop(0) if self.responses else self.default
        if callable(item):
            item = await item()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return item
        return {"success": True, "content": item, "usage": {"input_tokens": 10, "output_tokens": 5}}


class StreamingProvider:
    """Streaming provider yielding each scripted turn token by token."""

    def __init__(self, turns: list[list[str]], delay: float = 0.0):
        self.turns = list(turns)
        self.delay = delay

    async def complete(self, messages, system_prompt=None, temperature=0.2, max_tokens=None):
        raise AssertionError("streaming provider must be used through complete_stream")

    async def complete_stream(self, messages, system_prompt=None, temperature=0.2, max_tokens=None):
        tokens = self.turns.pop(0) if self.turns else ["done"]
        for token in tokens:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield {"type": "token", "content": token}
        yield {"type": "usage", "usage": {"input_tokens": 3, "output_tokens": len(tokens)}}


class RecordingSink:
    def __init__(self):
        self.events: list[tuple[str, StreamEvent]] = []

    def emit(self, workflow_id: str, event: StreamEvent) -> None:
        self.events.append((workflow_id, event))

    def of_type(self, event_type: EventType) -> list[StreamEvent]:
        return [e for _, e in self.events if e.type == event_type]


Behaviour = Callable[[Task, AgentIdentity, Any, Any], Awaitable[Report]]


def success_report(task: Task, identity: AgentIdentity, content: str = "ok") -> Report:
    return Report(task_id=task.id, agent_id=identity.id, status=ReportStatus.SUCCESS, content=content)


class FakeLoop:
    """
    Stand-in for ToolCallLoop used by sub-agent tests.

    Behaviours are looked up by agent id, then by agent name, then fall
    back to ``default`` (immediate success).
    """

    def __init__(self, behaviours: dict[str, Behaviour] | None = None, default: Behaviour | None = None):
        self.behaviours = behaviours or {}
        self.default = default
        self.runs: list[tuple[str, str]] = []

    async def run(self, task, identity, context, tools) -> Report:
        self.runs.append((identity.id, task.description))
        behaviour = self.behaviours.get(identity.id) or self.behaviours.get(identity.name) or self.default
        if behaviour is None:
            return success_report(task, identity)
        return await behaviour(task, identity, context, tools)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def primary():
    return AgentIdentity(id="primary", name="Primary", is_primary=True, delegates=True, agent_class="primary")


@pytest.fixture
def scripted_provider():
    """Factory fixture: scripted_provider([...turns])."""
    return ScriptedProvider


@pytest.fixture
def streaming_provider():
    return StreamingProvider


@pytest.fixture
def fake_loop():
    return FakeLoop
