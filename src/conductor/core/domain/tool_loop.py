"""
Tool-Call Loop

Executes a single task for one agent identity:

1. Send the conversation to the reasoning provider
2. Parse the response for ``<tool_call>`` blocks
3. Invoke every well-formed call and append the results to the conversation
4. Feed one corrective message back for malformed markup
5. Repeat until a turn contains no tool calls (the final answer) or the
   iteration cap is reached

Tool failures are recorded and the loop continues so the model can react.
Provider errors end the execution with a Failed report. Every provider
response, streamed token and tool start/end records activity so a heartbeat
supervisor can distinguish slow progress from a hang.
"""

import asyncio
import json
import time
from typing import Any

import structlog

from conductor.core.domain.context import ExecutionContext
from conductor.core.domain.errors import ProviderError, ToolExecutionError
from conductor.core.domain.events import StreamEvent, error, reasoning, token, tool_end, tool_start
from conductor.core.domain.markup import FormatIssue, ToolCall, format_feedback, parse_tool_calls
from conductor.core.domain.models import (
    AgentIdentity,
    ExecutionStatus,
    ReasoningStep,
    Report,
    ReportMetrics,
    ReportStatus,
    Task,
    ToolExecution,
)
from conductor.core.interfaces.events import EventSinkProtocol
from conductor.core.interfaces.llm import ReasoningProviderProtocol
from conductor.core.interfaces.store import StoreProtocol
from conductor.core.interfaces.tools import ToolInvokerProtocol
from conductor.core.prompts.tool_call_prompt import build_system_prompt

DEFAULT_MAX_ITERATIONS = 50
MIN_ITERATIONS = 1
MAX_ITERATIONS = 200


def clamp_iterations(value: int) -> int:
    return max(MIN_ITERATIONS, min(MAX_ITERATIONS, value))


class ToolCallLoop:
    """
    Iterative prompt/parse/invoke loop producing one Report per Task.

    Args:
        provider: Reasoning provider (streaming is used when available)
        event_sink: Receives reasoning, token and tool events
        store: Durable record of tool executions, reasoning and executions
        max_iterations: Default iteration cap, clamped to [1, 200]
        temperature: Sampling temperature passed to the provider
        max_tokens: Optional completion limit passed to the provider
    """

    def __init__(
        self,
        provider: ReasoningProviderProtocol,
        event_sink: EventSinkProtocol,
        store: StoreProtocol,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ):
        self.provider = provider
        self.event_sink = event_sink
        self.store = store
        self.max_iterations = clamp_iterations(max_iterations)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.logger = structlog.get_logger().bind(component="tool_call_loop")

    async def run(
        self,
        task: Task,
        identity: AgentIdentity,
        context: ExecutionContext,
        tools: ToolInvokerProtocol,
    ) -> Report:
        """
        Execute a task to completion.

        Args:
            task: Task to execute
            identity: Agent identity (prompt, allowlist, iteration override)
            context: Execution record and activity sink
            tools: Tool dispatcher

        Returns:
            Report with status Success or Failed.

        Raises:
            asyncio.CancelledError: When the execution is cancelled; the
                execution record is finalised as cancelled first.
        """
        started = time.monotonic()
        metrics = ReportMetrics()
        max_iterations = clamp_iterations(identity.max_iterations or self.max_iterations)
        available = [t for t in tools.list_tools() if identity.allows_tool(t["name"])]
        system_prompt = build_system_prompt(identity.system_prompt, available)
        messages: list[dict[str, Any]] = [{"role": "user", "content": self._render_task(task)}]
        last_issue: FormatIssue | None = None
        previous_had_tools = False

        self.logger.info(
            "execute_start",
            execution_id=context.execution_id,
            agent_id=identity.id,
            task=task.description[:100],
            max_iterations=max_iterations,
        )

        try:
            for iteration in range(1, max_iterations + 1):
                metrics.iterations = iteration
                self.logger.debug("loop_step", execution_id=context.execution_id, step=iteration)

                if previous_had_tools:
                    await self._reasoning(
                        f"Tool iteration {iteration} - Processing tool results...",
                        identity, context, metrics, iteration,
                    )

                response = await self._complete(messages, system_prompt, identity, context)
                context.record_activity()
                self._account_usage(metrics, response.get("usage"))

                thinking = response.get("thinking")
                if thinking:
                    await self._reasoning(thinking, identity, context, metrics, iteration)

                text = response.get("content") or ""
                parsed = parse_tool_calls(text)

                if parsed.is_final:
                    self.logger.info("final_answer_received", execution_id=context.execution_id, step=iteration)
                    return await self._finish(
                        self._success(task, identity, text, metrics, started), context, task
                    )

                messages.append({"role": "assistant", "content": text})
                blocks: list[str] = []

                if parsed.calls:
                    names = ", ".join(call.name for call in parsed.calls)
                    await self._reasoning(
                        f"Executing {len(parsed.calls)} tool(s): {names}",
                        identity, context, metrics, iteration,
                    )
                    for index, call in enumerate(parsed.calls):
                        blocks.append(
                            await self._invoke(call, index, iteration, task, identity, context, tools, metrics)
                        )

                if parsed.issues:
                    last_issue = parsed.issues[0]
                    self.logger.warning(
                        "tool_call_format_error",
                        execution_id=context.execution_id,
                        step=iteration,
                        issues=[issue.message for issue in parsed.issues],
                    )
                    blocks.append(format_feedback(parsed.issues))

                previous_had_tools = bool(parsed.calls)
                messages.append({"role": "user", "content": "\n\n".join(blocks)})

            error_message = f"exceeded maximum iterations ({max_iterations})"
            if last_issue is not None:
                error_message += f"; last model output was malformed: {last_issue.message}"
            self.logger.warning("max_iterations_exceeded", execution_id=context.execution_id)
            return await self._finish(
                self._failure(task, identity, error_message, metrics, started), context, task
            )

        except ProviderError as e:
            self.logger.error("provider_failed", execution_id=context.execution_id, error=e.message)
            self._emit(context, identity, error(e.message))
            return await self._finish(
                self._failure(task, identity, e.message, metrics, started), context, task
            )

        except asyncio.CancelledError:
            self.logger.info("execute_cancelled", execution_id=context.execution_id)
            if not context.execution.is_finished:
                context.execution.finish(ExecutionStatus.CANCELLED)
            await self._persist("execution", {**context.execution.to_dict(), "task_id": task.id})
            raise

    async def _complete(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str,
        identity: AgentIdentity,
        context: ExecutionContext,
    ) -> dict[str, Any]:
        """Call the provider, streaming tokens when it supports it."""
        if not hasattr(self.provider, "complete_stream"):
            try:
                result = await self.provider.complete(
                    messages=messages,
                    system_prompt=system_prompt,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
            except ProviderError:
                raise
            except Exception as e:
                raise ProviderError(str(e)) from e
            if not result.get("success"):
                raise ProviderError(result.get("error") or "unknown error")
            return result

        content: list[str] = []
        thinking: list[str] = []
        usage: dict[str, Any] = {}
        try:
            async for chunk in self.provider.complete_stream(
                messages=messages,
                system_prompt=system_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ):
                chunk_type = chunk.get("type")
                if chunk_type == "token":
                    token_content = chunk.get("content", "")
                    if token_content:
                        content.append(token_content)
                        context.record_activity()
                        self._emit(context, identity, token(token_content))
                elif chunk_type == "thinking":
                    thinking.append(chunk.get("content", ""))
                    context.record_activity()
                elif chunk_type == "usage":
                    usage = chunk.get("usage", {})
                elif chunk_type == "error":
                    raise ProviderError(chunk.get("message") or "stream error")
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(str(e)) from e

        return {
            "success": True,
            "content": "".join(content),
            "thinking": "".join(thinking) or None,
            "usage": usage,
        }

    async def _invoke(
        self,
        call: ToolCall,
        index: int,
        iteration: int,
        task: Task,
        identity: AgentIdentity,
        context: ExecutionContext,
        tools: ToolInvokerProtocol,
        metrics: ReportMetrics,
    ) -> str:
        """Invoke one tool call and return the result block for the conversation."""
        tool_id = f"{context.execution_id}_{iteration}_{index}"
        self._emit(context, identity, tool_start(tool_id, call.name, call.arguments, iteration))
        context.record_activity()
        started = time.monotonic()

        if not identity.allows_tool(call.name):
            result: dict[str, Any] = {
                "success": False,
                "error": f"Tool '{call.name}' is not permitted for agent '{identity.id}'",
            }
        else:
            try:
                self.logger.info("tool_execute", tool=call.name, args_keys=list(call.arguments.keys()))
                result = await tools.call(call.name, call.arguments)
            except ToolExecutionError as e:
                result = {"success": False, "error": e.message}
            except Exception as e:
                self.logger.error("tool_exception", tool=call.name, error=str(e))
                result = {"success": False, "error": str(e)}

        duration_ms = int((time.monotonic() - started) * 1000)
        context.record_activity()
        success = bool(result.get("success"))
        output = self._render_result(result)
        failure = None if success else str(result.get("error") or "tool reported failure")

        execution = ToolExecution(
            name=call.name,
            args=call.arguments,
            result=output,
            success=success,
            duration_ms=duration_ms,
            iteration=iteration,
            error=failure,
        )
        metrics.tool_executions.append(execution)
        if call.name not in metrics.tools_used:
            metrics.tools_used.append(call.name)
        for sub_id in result.get("sub_agent_ids", []):
            metrics.sub_calls.append(sub_id)

        if not success:
            self.logger.warning("tool_failed", step=iteration, tool=call.name, error=failure)

        await self._persist(
            "tool_execution",
            {
                "execution_id": context.execution_id,
                "workflow_id": context.workflow_id,
                "agent_id": identity.id,
                "task_id": task.id,
                "tool_id": tool_id,
                "name": call.name,
                "args": call.arguments,
                "result": output,
                "success": success,
                "duration_ms": duration_ms,
                "iteration": iteration,
                "error": failure,
            },
        )
        self._emit(
            context, identity,
            tool_end(tool_id, call.name, success, duration_ms, self._truncate(output), failure),
        )

        status = "success" if success else "error"
        return f'<tool_result name="{call.name}" status="{status}">\n{output}\n</tool_result>'

    async def _reasoning(
        self,
        content: str,
        identity: AgentIdentity,
        context: ExecutionContext,
        metrics: ReportMetrics,
        iteration: int,
    ) -> None:
        metrics.reasoning_steps.append(ReasoningStep(content=content))
        self._emit(context, identity, reasoning(content, step=len(metrics.reasoning_steps)))
        await self._persist(
            "reasoning_step",
            {
                "execution_id": context.execution_id,
                "workflow_id": context.workflow_id,
                "agent_id": identity.id,
                "iteration": iteration,
                "content": content,
            },
        )

    async def _finish(self, report: Report, context: ExecutionContext, task: Task) -> Report:
        execution = context.execution
        if not execution.is_finished:
            execution.finish(
                ExecutionStatus.COMPLETED if report.succeeded else ExecutionStatus.ERROR
            )
        await self._persist(
            "execution",
            {
                **execution.to_dict(),
                "task_id": task.id,
                "report_status": report.status.value,
                "error_message": report.error_message,
                "tokens_in": report.metrics.tokens_in,
                "tokens_out": report.metrics.tokens_out,
            },
        )
        self.logger.info(
            "execute_complete",
            execution_id=execution.id,
            status=report.status.value,
            iterations=report.metrics.iterations,
            duration_ms=report.metrics.duration_ms,
        )
        return report

    def _success(
        self,
        task: Task,
        identity: AgentIdentity,
        answer: str,
        metrics: ReportMetrics,
        started: float,
    ) -> Report:
        metrics.duration_ms = int((time.monotonic() - started) * 1000)
        sections = [
            f"# Agent Report: {identity.name}",
            f"**Task**: {task.description}",
            "**Status**: Success",
            f"## Response\n\n{answer.strip()}",
            (
                "## Metrics\n\n"
                f"- Duration: {metrics.duration_ms} ms\n"
                f"- Iterations: {metrics.iterations}\n"
                f"- Tokens: {metrics.tokens_in} in / {metrics.tokens_out} out"
            ),
        ]
        if metrics.tool_executions:
            usage = "\n".join(
                f"- {t.name}: {'ok' if t.success else 'failed'} ({t.duration_ms} ms)"
                for t in metrics.tool_executions
            )
            sections.append(f"## Tool Usage\n\n{usage}")
        return Report(
            task_id=task.id,
            agent_id=identity.id,
            status=ReportStatus.SUCCESS,
            content="\n\n".join(sections),
            metrics=metrics,
        )

    def _failure(
        self,
        task: Task,
        identity: AgentIdentity,
        error_message: str,
        metrics: ReportMetrics,
        started: float,
    ) -> Report:
        metrics.duration_ms = int((time.monotonic() - started) * 1000)
        return Report.failed(task, identity.id, error_message, metrics)

    def _account_usage(self, metrics: ReportMetrics, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        metrics.tokens_in += int(usage.get("input_tokens", usage.get("prompt_tokens", 0)) or 0)
        metrics.tokens_out += int(usage.get("output_tokens", usage.get("completion_tokens", 0)) or 0)

    def _emit(self, context: ExecutionContext, identity: AgentIdentity, event: StreamEvent) -> None:
        event.execution_id = context.execution_id
        event.agent_id = identity.id
        self.event_sink.emit(context.workflow_id, event)

    async def _persist(self, kind: str, record: dict[str, Any]) -> None:
        try:
            await self.store.persist(kind, record)
        except Exception as e:
            self.logger.error("store_persist_failed", kind=kind, error=str(e))

    def _render_task(self, task: Task) -> str:
        if not task.context:
            return task.description
        rendered = json.dumps(task.context, indent=2, ensure_ascii=False, default=str)
        return f"{task.description}\n\n## Context\n\n{rendered}"

    def _render_result(self, result: dict[str, Any]) -> str:
        if not result.get("success"):
            return f"Error: {result.get('error') or 'tool reported failure'}"
        output = result.get("output", result.get("result", ""))
        if isinstance(output, str):
            return output
        return json.dumps(output, ensure_ascii=False, default=str)

    def _truncate(self, output: str, max_length: int = 200) -> str:
        if len(output) <= max_length:
            return output
        return output[:max_length] + "..."
