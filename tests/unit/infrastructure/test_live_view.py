"""Unit Tests for LiveViewBuffer."""

from conductor.core.domain.events import token
from conductor.infrastructure.live_view import LiveViewBuffer


def test_keeps_most_recent_events():
    buffer = LiveViewBuffer(maxlen=2)

    for content in ("a", "b", "c"):
        buffer("wf_1", token(content))

    assert [e.data["content"] for e in buffer.events()] == ["b", "c"]


def test_switching_workflow_starts_fresh():
    buffer = LiveViewBuffer()
    buffer("wf_1", token("a"))

    buffer("wf_2", token("b"))

    assert buffer.workflow_id == "wf_2"
    assert [e.data["content"] for e in buffer.events("wf_2")] == ["b"]
    assert buffer.events("wf_1") == []


def test_clear():
    buffer = LiveViewBuffer()
    buffer("wf_1", token("a"))

    buffer.clear()

    assert buffer.workflow_id is None
    assert buffer.events() == []
