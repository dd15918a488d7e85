"""Unit Tests for domain models."""

import pytest

from conductor.core.domain.errors import InvalidTransitionError
from conductor.core.domain.events import EventType, workflow_complete
from conductor.core.domain.models import (
    AgentIdentity,
    Execution,
    ExecutionStatus,
    Lifecycle,
    Report,
    ReportStatus,
    Task,
)


class TestExecution:
    def test_starts_running(self):
        execution = Execution(agent_id="a", workflow_id="wf")

        assert execution.status == ExecutionStatus.RUNNING
        assert execution.id.startswith("exec_")
        assert not execution.is_finished

    @pytest.mark.parametrize(
        "status", [ExecutionStatus.COMPLETED, ExecutionStatus.ERROR, ExecutionStatus.CANCELLED]
    )
    def test_finishes_exactly_once(self, status):
        execution = Execution(agent_id="a", workflow_id="wf")

        execution.finish(status)

        assert execution.status == status
        assert execution.completed_at is not None
        with pytest.raises(InvalidTransitionError):
            execution.finish(ExecutionStatus.COMPLETED)

    def test_cannot_return_to_running(self):
        execution = Execution(agent_id="a", workflow_id="wf")
        execution.finish(ExecutionStatus.ERROR)

        with pytest.raises(InvalidTransitionError):
            execution.finish(ExecutionStatus.RUNNING)


class TestReport:
    def test_failed_report_layout(self):
        task = Task.create("Find the capital of France")

        report = Report.failed(task, "researcher", "provider unavailable")

        assert report.status == ReportStatus.FAILED
        assert not report.succeeded
        assert report.content.startswith("# Agent Report: researcher")
        assert "**Task**: Find the capital of France" in report.content
        assert "## Error\n\nprovider unavailable" in report.content

    def test_summary_truncates(self):
        task = Task.create("t")
        report = Report(task_id=task.id, agent_id="a", status=ReportStatus.SUCCESS, content="x" * 300)

        assert report.summary() == "x" * 200 + "..."

    def test_to_dict_uses_plain_status(self):
        task = Task.create("t")
        report = Report(task_id=task.id, agent_id="a", status=ReportStatus.PARTIAL, content="c")

        assert report.to_dict()["status"] == "partial"


class TestAgentIdentity:
    def test_missing_allowlist_means_unrestricted(self):
        identity = AgentIdentity.from_dict({"id": "a"})

        assert identity.name == "a"
        assert identity.tool_allowlist is None
        assert identity.allows_tool("anything")

    def test_empty_allowlist_permits_nothing(self):
        identity = AgentIdentity.from_dict({"id": "a", "tool_allowlist": []})

        assert not identity.allows_tool("echo")

    def test_round_trip_keeps_flags(self):
        identity = AgentIdentity(
            id="o", name="Orchestrator", is_primary=True, delegates=True, lifecycle=Lifecycle.TEMPORARY
        )

        restored = AgentIdentity.from_dict(identity.to_dict())

        assert restored == identity
        assert restored.is_temporary


def test_task_ids_are_unique():
    assert Task.create("a").id != Task.create("a").id


def test_workflow_complete_event():
    event = workflow_complete("completed", "report", agent_id="a")

    assert event.type == EventType.WORKFLOW_COMPLETE
    assert event.to_dict()["data"] == {"status": "completed", "report": "report"}
