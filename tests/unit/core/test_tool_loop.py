"""
Unit Tests for the Tool-Call Loop

Runs the loop against scripted reasoning providers, the builtin tools and
an in-memory store to verify final answers, tool dispatch, corrective
feedback for malformed markup, provider failures, streaming and
cancellation.
"""

import asyncio

import pytest

from conductor.core.domain.context import ExecutionContext
from conductor.core.domain.events import EventType
from conductor.core.domain.models import (
    AgentIdentity,
    Execution,
    ExecutionStatus,
    ReportStatus,
    Task,
)
from conductor.core.domain.tool_loop import ToolCallLoop, clamp_iterations
from conductor.infrastructure.tools.builtin import builtin_tools
from conductor.infrastructure.tools.local_invoker import LocalToolInvoker

CALC = '<tool_call>{"name": "calculator", "arguments": {"expression": "17*23"}}</tool_call>'
UNTERMINATED = '<tool_call>{"name": "echo", "arguments": {"text": "hi"}}'
MALFORMED = [
    UNTERMINATED,
    '<tool_call>{"name": "echo", "arguments": {}}</tool_calls>',
    '<tool_call>{"name": "echo", "arguments": {}}</tool>',
    "<tool_call>{name: echo}</tool_call>",
    '<tool_call>["echo"]</tool_call>',
    '<tool_call>{"arguments": {}}</tool_call>',
    '<tool_call>{"name": "echo", "arguments": "hi"}</tool_call>',
]


@pytest.fixture
def tools():
    return LocalToolInvoker(builtin_tools())


@pytest.fixture
def identity():
    return AgentIdentity(id="worker", name="Worker", system_prompt="You are a worker.")


@pytest.fixture
def context():
    return ExecutionContext(execution=Execution(agent_id="worker", workflow_id="wf_test"))


def make_loop(provider, sink, store, **kwargs):
    return ToolCallLoop(provider=provider, event_sink=sink, store=store, **kwargs)


class TestFinalAnswer:
    @pytest.mark.asyncio
    async def test_plain_answer_succeeds_in_one_iteration(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider(["The answer is 391."])
        loop = make_loop(provider, sink, store)

        report = await loop.run(Task.create("What is 17*23?"), identity, context, tools)

        assert report.status == ReportStatus.SUCCESS
        assert "The answer is 391." in report.content
        assert report.metrics.iterations == 1
        assert report.metrics.tokens_in == 10
        assert report.metrics.tokens_out == 5
        assert context.execution.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_system_prompt_lists_allowed_tools_only(
        self, scripted_provider, sink, store, context, tools
    ):
        provider = scripted_provider(["ok"])
        identity = AgentIdentity(id="w", name="W", tool_allowlist=["echo"])

        await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        prompt = provider.system_prompts[0]
        assert "echo" in prompt
        assert "calculator" not in prompt

    @pytest.mark.asyncio
    async def test_task_context_is_rendered(self, scripted_provider, sink, store, identity, context, tools):
        provider = scripted_provider(["ok"])

        await make_loop(provider, sink, store).run(
            Task.create("Summarise", {"topic": "bees"}), identity, context, tools
        )

        assert '"topic": "bees"' in provider.calls[0][0]["content"]


class TestToolDispatch:
    @pytest.mark.asyncio
    async def test_tool_result_is_fed_back(self, scripted_provider, sink, store, identity, context, tools):
        provider = scripted_provider([CALC, "17*23 = 391"])
        loop = make_loop(provider, sink, store)

        report = await loop.run(Task.create("compute"), identity, context, tools)

        assert report.succeeded
        assert report.metrics.iterations == 2
        assert report.metrics.tools_used == ["calculator"]
        assert "## Tool Usage" in report.content
        feedback = provider.calls[1][-1]["content"]
        assert '<tool_result name="calculator" status="success">' in feedback
        assert "391" in feedback

    @pytest.mark.asyncio
    async def test_tool_events_and_records(self, scripted_provider, sink, store, identity, context, tools):
        provider = scripted_provider([CALC, "done"])

        await make_loop(provider, sink, store).run(Task.create("compute"), identity, context, tools)

        start = sink.of_type(EventType.TOOL_START)[0]
        end = sink.of_type(EventType.TOOL_END)[0]
        assert start.data["tool"] == "calculator"
        assert start.data["tool_id"] == end.data["tool_id"]
        assert end.data["success"] is True
        assert end.execution_id == context.execution_id
        records = await store.query("tool_execution", {"execution_id": context.execution_id})
        assert len(records) == 1
        assert records[0]["result"] == "391"
        reasoning = [e.data["content"] for e in sink.of_type(EventType.REASONING)]
        assert "Executing 1 tool(s): calculator" in reasoning
        assert "Tool iteration 2 - Processing tool results..." in reasoning

    @pytest.mark.asyncio
    async def test_tool_failure_does_not_end_execution(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        bad = '<tool_call>{"name": "calculator", "arguments": {"expression": "1/0"}}</tool_call>'
        provider = scripted_provider([bad, "Division by zero is undefined."])

        report = await make_loop(provider, sink, store).run(Task.create("1/0"), identity, context, tools)

        assert report.succeeded
        execution = report.metrics.tool_executions[0]
        assert execution.success is False
        assert 'status="error"' in provider.calls[1][-1]["content"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        call = '<tool_call>{"name": "web_search", "arguments": {}}</tool_call>'
        provider = scripted_provider([call, "I cannot search."])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert report.succeeded
        assert "Tool not found: web_search" in provider.calls[1][-1]["content"]

    @pytest.mark.asyncio
    async def test_allowlist_blocks_tool(self, scripted_provider, sink, store, context, tools):
        identity = AgentIdentity(id="w", name="W", tool_allowlist=["echo"])
        provider = scripted_provider([CALC, "ok"])

        await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert "is not permitted for agent 'w'" in provider.calls[1][-1]["content"]

    @pytest.mark.asyncio
    async def test_invoker_exception_becomes_failed_result(
        self, scripted_provider, sink, store, identity, context
    ):
        class ExplodingTools:
            def list_tools(self):
                return [{"name": "calculator", "description": "", "parameters": {}}]

            async def call(self, tool_name, args):
                raise RuntimeError("kaboom")

        provider = scripted_provider([CALC, "recovered"])

        report = await make_loop(provider, sink, store).run(
            Task.create("t"), identity, context, ExplodingTools()
        )

        assert report.succeeded
        assert "Error: kaboom" in provider.calls[1][-1]["content"]

    @pytest.mark.asyncio
    async def test_sub_agent_ids_are_counted(self, scripted_provider, sink, store, identity, context):
        class DelegationTools:
            def list_tools(self):
                return [{"name": "delegate_task", "description": "", "parameters": {}}]

            async def call(self, tool_name, args):
                return {"success": True, "output": "report", "sub_agent_ids": ["researcher"]}

        call = '<tool_call>{"name": "delegate_task", "arguments": {"agent_id": "researcher", "task": "x"}}</tool_call>'
        provider = scripted_provider([call, "done"])

        report = await make_loop(provider, sink, store).run(
            Task.create("t"), identity, context, DelegationTools()
        )

        assert report.metrics.sub_calls == ["researcher"]


class TestMalformedMarkup:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("malformed", MALFORMED)
    async def test_one_corrective_turn_then_recovery(
        self, malformed, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider([malformed, "hi"])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert report.succeeded
        assert report.metrics.iterations == 2
        added = provider.calls[1][len(provider.calls[0]):]
        assert [m["role"] for m in added] == ["assistant", "user"]
        assert added[1]["content"].startswith("format error: expected ")
        assert report.metrics.tool_executions == []

    @pytest.mark.asyncio
    async def test_unterminated_tag_names_end_of_response(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider([UNTERMINATED, "hi"])

        await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert provider.calls[1][-1]["content"].startswith(
            "format error: expected </tool_call>, got end of response"
        )

    @pytest.mark.asyncio
    async def test_two_malformed_blocks_get_a_single_correction(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        text = '<tool_call>{"name": 1}</tool_call><tool_call>{"name": "x"}</tool_calls>'
        provider = scripted_provider([text, "hi"])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert report.succeeded
        added = provider.calls[1][len(provider.calls[0]):]
        assert [m["role"] for m in added] == ["assistant", "user"]
        correction = added[1]["content"]
        assert correction.count("format error:") == 2
        assert correction.startswith("format error: expected ")
        assert "\n- format error: expected " in correction

    @pytest.mark.asyncio
    async def test_unterminated_tag_fails_only_after_max_iterations(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider([UNTERMINATED] * 5)
        loop = make_loop(provider, sink, store, max_iterations=3)

        report = await loop.run(Task.create("t"), identity, context, tools)

        assert report.status == ReportStatus.FAILED
        assert len(provider.calls) == 3
        assert "exceeded maximum iterations (3)" in report.error_message
        assert "format error: expected </tool_call>, got end of response" in report.error_message
        # Every turn after the first received exactly one correction.
        for turn in (1, 2):
            corrections = [
                m for m in provider.calls[turn] if m["content"].startswith("format error:")
            ]
            assert len(corrections) == turn
        assert context.execution.status == ExecutionStatus.ERROR

    @pytest.mark.asyncio
    async def test_identity_iteration_override(self, scripted_provider, sink, store, context, tools):
        identity = AgentIdentity(id="w", name="W", max_iterations=2)
        provider = scripted_provider([UNTERMINATED] * 5)

        report = await make_loop(provider, sink, store, max_iterations=50).run(
            Task.create("t"), identity, context, tools
        )

        assert not report.succeeded
        assert len(provider.calls) == 2


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_unsuccessful_result_fails_report(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider([{"success": False, "error": "rate limited"}])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert report.status == ReportStatus.FAILED
        assert report.error_message == "reasoning provider error: rate limited"
        assert "**Status**: Failed" in report.content
        assert sink.of_type(EventType.ERROR)[0].data["message"] == report.error_message
        assert context.execution.status == ExecutionStatus.ERROR

    @pytest.mark.asyncio
    async def test_raised_exception_fails_report(
        self, scripted_provider, sink, store, identity, context, tools
    ):
        provider = scripted_provider([ConnectionError("connection reset")])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert not report.succeeded
        assert "connection reset" in report.error_message

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort(self, scripted_provider, sink, identity, context, tools):
        class BrokenStore:
            async def persist(self, kind, record):
                raise OSError("disk full")

            async def query(self, kind, filters=None):
                return []

        provider = scripted_provider([CALC, "done"])

        report = await make_loop(provider, sink, BrokenStore()).run(
            Task.create("t"), identity, context, tools
        )

        assert report.succeeded


class TestStreaming:
    @pytest.mark.asyncio
    async def test_tokens_are_emitted_and_joined(
        self, streaming_provider, sink, store, identity, context, tools
    ):
        provider = streaming_provider([["The ", "answer ", "is 4."]])

        report = await make_loop(provider, sink, store).run(Task.create("2+2"), identity, context, tools)

        assert report.succeeded
        assert "The answer is 4." in report.content
        assert [e.data["content"] for e in sink.of_type(EventType.TOKEN)] == ["The ", "answer ", "is 4."]
        assert report.metrics.tokens_out == 3

    @pytest.mark.asyncio
    async def test_streamed_tool_call(self, streaming_provider, sink, store, identity, context, tools):
        provider = streaming_provider([["<tool_call>", CALC[len("<tool_call>"):]], ["391"]])

        report = await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        assert report.metrics.tools_used == ["calculator"]

    @pytest.mark.asyncio
    async def test_stream_error_chunk_fails_report(self, sink, store, identity, context, tools):
        class ErrorStream:
            async def complete(self, **kwargs):
                raise AssertionError("unused")

            async def complete_stream(self, **kwargs):
                yield {"type": "token", "content": "par"}
                yield {"type": "error", "message": "stream broke"}

        report = await make_loop(ErrorStream(), sink, store).run(Task.create("t"), identity, context, tools)

        assert not report.succeeded
        assert "stream broke" in report.error_message


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_finalises_execution(self, scripted_provider, sink, store, identity, context, tools):
        async def hang():
            await asyncio.sleep(60)

        provider = scripted_provider([hang])
        loop = make_loop(provider, sink, store)

        runner = asyncio.create_task(loop.run(Task.create("t"), identity, context, tools))
        await asyncio.sleep(0.01)
        runner.cancel()

        with pytest.raises(asyncio.CancelledError):
            await runner
        assert context.execution.status == ExecutionStatus.CANCELLED
        records = await store.query("execution", {"id": context.execution_id})
        assert records[0]["status"] == "cancelled"


class TestActivity:
    @pytest.mark.asyncio
    async def test_provider_and_tools_record_activity(self, scripted_provider, sink, store, identity, tools):
        class CountingSink:
            count = 0

            def record_activity(self):
                self.count += 1

        activity = CountingSink()
        context = ExecutionContext(
            execution=Execution(agent_id="worker", workflow_id="wf_test"), activity=activity
        )
        provider = scripted_provider([CALC, "done"])

        await make_loop(provider, sink, store).run(Task.create("t"), identity, context, tools)

        # Two provider responses plus tool start and tool end.
        assert activity.count == 4


def test_clamp_iterations():
    assert clamp_iterations(0) == 1
    assert clamp_iterations(50) == 50
    assert clamp_iterations(500) == 200
