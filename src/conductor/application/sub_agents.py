"""
Application Layer - Sub-Agent Executor

Runs child executions on behalf of a primary agent. Every child runs
through ``execute_with_heartbeat``: the tool-call loop executes in its own
asyncio task while a supervising loop wakes every ``poll_interval`` seconds
and aborts the child if no activity was recorded for longer than
``inactivity_timeout``. Long executions that keep producing tokens or tool
results are never interrupted. Activity of a child also counts as activity
of every ancestor execution waiting on it.

Three delegation modes share that guarded execution:
- spawn: create a new (temporary by default) identity and run one task
- delegate: hand one task to an existing identity
- parallel_batch: run an ordered list of (agent, task) pairs concurrently
  and return their reports in submission order

Before dispatch the executor enforces that only primary agents delegate,
that a parent never has more than ``max_sub_agents`` live children, and
that the circuit breaker of the target agent class admits the request.
Unless the policy mode is permissive, every delegation also waits for a
human decision through the confirmation resolver. An admitted circuit
breaker trial that ends without an outcome is released so the agent class
is never locked out.
"""

import asyncio
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from conductor.application.registry import AgentRegistry
from conductor.core.domain.activity import ActivityMonitor
from conductor.core.domain.circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from conductor.core.domain.context import ExecutionContext
from conductor.core.domain.errors import (
    AdmissionRejectedError,
    AgentNotFoundError,
    CircuitOpenError,
    ConfirmationRejectedError,
    InactivityTimeoutError,
    PermissionDeniedError,
)
from conductor.core.domain.events import (
    EventType,
    StreamEvent,
    confirmation_required,
    confirmation_resolved,
    error,
    sub_agent_progress,
)
from conductor.core.domain.models import (
    AgentIdentity,
    ConfirmationRequest,
    Execution,
    ExecutionStatus,
    Lifecycle,
    Report,
    ReportMetrics,
    ReportStatus,
    RiskLevel,
    Task,
)
from conductor.core.domain.tool_loop import ToolCallLoop
from conductor.core.interfaces.activity import ActivitySinkProtocol
from conductor.core.interfaces.confirmation import ConfirmationResolverProtocol
from conductor.core.interfaces.events import EventSinkProtocol
from conductor.core.interfaces.policy import PolicyMode, PolicyProviderProtocol
from conductor.core.interfaces.store import StoreProtocol
from conductor.core.interfaces.tools import ToolInvokerProtocol

logger = structlog.get_logger()

MAX_SUB_AGENTS = 3
INACTIVITY_TIMEOUT_SECONDS = 300.0
ACTIVITY_POLL_SECONDS = 30.0
CONFIRMATION_TIMEOUT_SECONDS = 60.0
PREVIEW_LENGTH = 200

ToolBinder = Callable[[AgentIdentity, Execution], ToolInvokerProtocol]
BatchEntry = tuple[AgentIdentity | str, Task]


def _preview(text: str) -> str:
    return text if len(text) <= PREVIEW_LENGTH else text[:PREVIEW_LENGTH] + "..."


@dataclass
class SpawnRequest:
    """
    Description of a sub-agent to create.

    Attributes:
        name: Display name of the sub-agent
        task: Task the sub-agent executes
        system_prompt: Instructions for the sub-agent
        tool_allowlist: Tools the sub-agent may use (None = unrestricted)
        capabilities: Capability tags
        permanent: Keep the identity registered after the task completes
        agent_class: Circuit breaker key
    """

    name: str
    task: Task
    system_prompt: str | None = None
    tool_allowlist: list[str] | None = None
    capabilities: list[str] = field(default_factory=list)
    permanent: bool = False
    agent_class: str = "sub_agent"


@dataclass
class BatchResult:
    """Reports of a parallel batch, in submission order."""

    reports: list[Report]
    status: ReportStatus

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.reports if r.succeeded)


@dataclass
class LiveChild:
    agent_id: str
    name: str
    task: str
    mode: str
    started_at: datetime = field(default_factory=datetime.now)


class _ChainedActivity:
    def __init__(self, *sinks: ActivitySinkProtocol):
        self.sinks = sinks

    def record_activity(self) -> None:
        for sink in self.sinks:
            sink.record_activity()


class SubAgentSlots:
    """
    Per-parent admission counter for concurrent sub-executions.

    Rejects instead of queueing: a request that would exceed the limit
    raises AdmissionRejectedError immediately.
    """

    def __init__(self, max_sub_agents: int = MAX_SUB_AGENTS):
        self.max_sub_agents = max_sub_agents
        self._lock = threading.Lock()
        self._live: dict[str, int] = {}

    def acquire(self, parent_execution_id: str, count: int = 1, operation: str = "spawn_agent") -> None:
        with self._lock:
            current = self._live.get(parent_execution_id, 0)
            if current + count > self.max_sub_agents:
                raise AdmissionRejectedError(
                    f"Sub-agent limit reached: maximum {self.max_sub_agents} concurrent "
                    f"sub-agent operations for {operation}. Current: {current}, "
                    f"requested: {count}. Complete existing operations first.",
                    limit=self.max_sub_agents,
                    current=current,
                )
            self._live[parent_execution_id] = current + count

    def release(self, parent_execution_id: str, count: int = 1) -> None:
        with self._lock:
            remaining = self._live.get(parent_execution_id, 0) - count
            if remaining > 0:
                self._live[parent_execution_id] = remaining
            else:
                self._live.pop(parent_execution_id, None)

    def live(self, parent_execution_id: str) -> int:
        with self._lock:
            return self._live.get(parent_execution_id, 0)

    def available(self, parent_execution_id: str) -> int:
        return max(0, self.max_sub_agents - self.live(parent_execution_id))


class SubAgentExecutor:
    """
    Heartbeat-guarded execution of sub-agents.

    Args:
        loop: Tool-call loop used for every execution
        registry: Agent identity registry
        tools: Base tool invoker
        event_sink: Receives sub-agent lifecycle events
        store: Durable record of sub-agent executions
        breakers: Circuit breakers keyed by agent class
        max_sub_agents: Concurrent children allowed per parent execution
        inactivity_timeout: Default seconds of silence before aborting
        poll_interval: Default seconds between heartbeat checks
        tool_binder: Builds the tool invoker for one execution. Used to
            give delegating agents sub-agent tools bound to their execution.
        policy: Decides whether delegations need confirmation
        confirmations: Resolves confirmation requests (None skips confirmation)
        confirmation_timeout: Seconds to wait for a decision before rejecting
    """

    def __init__(
        self,
        loop: ToolCallLoop,
        registry: AgentRegistry,
        tools: ToolInvokerProtocol,
        event_sink: EventSinkProtocol,
        store: StoreProtocol,
        breakers: CircuitBreakerRegistry | None = None,
        max_sub_agents: int = MAX_SUB_AGENTS,
        inactivity_timeout: float = INACTIVITY_TIMEOUT_SECONDS,
        poll_interval: float = ACTIVITY_POLL_SECONDS,
        tool_binder: ToolBinder | None = None,
        policy: PolicyProviderProtocol | None = None,
        confirmations: ConfirmationResolverProtocol | None = None,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT_SECONDS,
    ):
        self.loop = loop
        self.registry = registry
        self.tools = tools
        self.event_sink = event_sink
        self.store = store
        self.breakers = breakers or CircuitBreakerRegistry()
        self.slots = SubAgentSlots(max_sub_agents)
        self.inactivity_timeout = inactivity_timeout
        self.poll_interval = poll_interval
        self.tool_binder = tool_binder
        self.policy = policy
        self.confirmations = confirmations
        self.confirmation_timeout = confirmation_timeout
        self._children_lock = threading.Lock()
        self._children: dict[str, dict[str, LiveChild]] = {}
        self._activity: dict[str, ActivitySinkProtocol] = {}
        self.logger = logger.bind(component="sub_agent_executor")

    @property
    def max_sub_agents(self) -> int:
        return self.slots.max_sub_agents

    def tools_for(self, identity: AgentIdentity, execution: Execution) -> ToolInvokerProtocol:
        if self.tool_binder is None:
            return self.tools
        return self.tool_binder(identity, execution)

    async def execute_with_heartbeat(
        self,
        identity: AgentIdentity,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str | None = None,
        inactivity_timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> Report:
        """
        Run one execution under inactivity supervision.

        Args:
            identity: Agent to run
            task: Task to execute
            workflow_id: Owning top-level workflow
            parent_execution_id: Parent execution, if this is a child
            inactivity_timeout: Seconds without activity before aborting
            poll_interval: Seconds between supervision ticks

        Returns:
            The execution's Report, or a Failed report when it was aborted
            for inactivity or crashed.

        Raises:
            asyncio.CancelledError: When the caller is cancelled; the
                supervised execution is cancelled as well.
        """
        timeout = self.inactivity_timeout if inactivity_timeout is None else inactivity_timeout
        interval = self.poll_interval if poll_interval is None else poll_interval
        monitor = ActivityMonitor()
        execution = Execution(
            agent_id=identity.id,
            workflow_id=workflow_id,
            parent_execution_id=parent_execution_id,
        )
        activity = self._activity_for(execution, monitor)
        context = ExecutionContext(execution=execution, activity=activity)
        try:
            return await self._supervise(
                context, monitor, identity, task, timeout, interval
            )
        finally:
            with self._children_lock:
                self._activity.pop(execution.id, None)

    async def _supervise(
        self,
        context: ExecutionContext,
        monitor: ActivityMonitor,
        identity: AgentIdentity,
        task: Task,
        timeout: float,
        interval: float,
    ) -> Report:
        execution = context.execution
        started = time.monotonic()
        inner = asyncio.create_task(
            self.loop.run(task, identity, context, self.tools_for(identity, execution)),
            name=f"execution-{execution.id}",
        )

        try:
            while True:
                done, _ = await asyncio.wait({inner}, timeout=interval)
                if inner in done:
                    break
                idle = monitor.seconds_since_activity()
                if idle > timeout:
                    return await self._abort_inactive(
                        inner, execution, identity, task, idle, timeout, started
                    )
                self.logger.debug(
                    "heartbeat_tick",
                    execution_id=execution.id,
                    idle_seconds=round(idle, 1),
                )
                if execution.parent_execution_id is not None:
                    self.event_sink.emit(
                        execution.workflow_id,
                        sub_agent_progress(
                            identity.id,
                            f"running, last activity {int(idle)}s ago",
                            execution_id=execution.parent_execution_id,
                            agent_id=identity.id,
                        ),
                    )
        except asyncio.CancelledError:
            inner.cancel()
            await asyncio.gather(inner, return_exceptions=True)
            raise

        try:
            return inner.result()
        except Exception as e:
            self.logger.error(
                "execution_crashed",
                execution_id=execution.id,
                agent_id=identity.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            if not execution.is_finished:
                execution.finish(ExecutionStatus.ERROR)
            return Report.failed(
                task,
                identity.id,
                f"execution crashed: {type(e).__name__}: {e}",
                ReportMetrics(duration_ms=int((time.monotonic() - started) * 1000)),
            )

    async def spawn(
        self,
        caller: AgentIdentity,
        request: SpawnRequest,
        *,
        workflow_id: str,
        parent_execution_id: str,
    ) -> Report:
        """
        Create a sub-agent and run one task with it.

        Temporary identities are unregistered when the task ends.

        Raises:
            PermissionDeniedError: Caller is not a primary agent
            AdmissionRejectedError: Parent already has the maximum live children
            ConfirmationRejectedError: The spawn was not confirmed
            CircuitOpenError: Circuit of the requested agent class is open
        """
        self._check_primary(caller, "spawn sub-agents")
        identity = AgentIdentity(
            id=f"sub_{uuid.uuid4().hex}",
            name=request.name,
            capabilities=list(request.capabilities),
            tool_allowlist=request.tool_allowlist,
            lifecycle=Lifecycle.PERMANENT if request.permanent else Lifecycle.TEMPORARY,
            is_primary=False,
            system_prompt=request.system_prompt,
            agent_class=request.agent_class,
            workflow_id=workflow_id,
        )

        self.slots.acquire(parent_execution_id, 1, operation="spawn_agent")
        try:
            await self._confirm(
                caller,
                ConfirmationRequest(
                    workflow_id=workflow_id,
                    agent_id=caller.id,
                    operation="spawn_agent",
                    message=f"Spawn sub-agent '{request.name}'",
                    risk_level=RiskLevel.MEDIUM,
                    details={
                        "sub_agent_name": request.name,
                        "prompt_preview": _preview(request.task.description),
                        "tools": request.tool_allowlist,
                    },
                ),
                parent_execution_id,
            )
            self.registry.register(identity)
            try:
                return await self._run_child(
                    identity, request.task,
                    workflow_id=workflow_id,
                    parent_execution_id=parent_execution_id,
                    mode="spawn",
                )
            finally:
                if identity.is_temporary:
                    self.registry.unregister(identity.id)
        finally:
            self.slots.release(parent_execution_id)

    async def delegate(
        self,
        caller: AgentIdentity,
        agent_id: str,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str,
    ) -> Report:
        """
        Hand a task to an existing agent and wait for its report.

        Raises:
            PermissionDeniedError: Caller is not a primary agent
            AgentNotFoundError: No agent with that id
            AdmissionRejectedError: Parent already has the maximum live children
            ConfirmationRejectedError: The delegation was not confirmed
            CircuitOpenError: Circuit of the target agent class is open
        """
        self._check_primary(caller, "delegate tasks")
        identity = self.registry.require(agent_id)
        self.slots.acquire(parent_execution_id, 1, operation="delegate_task")
        try:
            await self._confirm(
                caller,
                ConfirmationRequest(
                    workflow_id=workflow_id,
                    agent_id=caller.id,
                    operation="delegate_task",
                    message=f"Delegate a task to '{identity.name}'",
                    risk_level=RiskLevel.MEDIUM,
                    details={
                        "target_agent_id": identity.id,
                        "target_agent_name": identity.name,
                        "prompt_preview": _preview(task.description),
                    },
                ),
                parent_execution_id,
            )
            return await self._run_child(
                identity, task,
                workflow_id=workflow_id,
                parent_execution_id=parent_execution_id,
                mode="delegate",
            )
        finally:
            self.slots.release(parent_execution_id)

    async def parallel_batch(
        self,
        caller: AgentIdentity,
        entries: Sequence[BatchEntry],
        *,
        workflow_id: str,
        parent_execution_id: str,
    ) -> BatchResult:
        """
        Run several tasks concurrently and return reports in submission order.

        Each entry succeeds or fails on its own. An unknown agent or an open
        circuit fails only that entry.

        Raises:
            PermissionDeniedError: Caller is not a primary agent
            AdmissionRejectedError: The batch does not fit into the free slots
            ConfirmationRejectedError: The batch was not confirmed
        """
        self._check_primary(caller, "run parallel tasks")
        if not entries:
            return BatchResult(reports=[], status=ReportStatus.SUCCESS)

        self.slots.acquire(parent_execution_id, len(entries), operation="parallel_tasks")
        try:
            await self._confirm(
                caller,
                ConfirmationRequest(
                    workflow_id=workflow_id,
                    agent_id=caller.id,
                    operation="parallel_tasks",
                    message=f"Run {len(entries)} sub-agent tasks in parallel",
                    risk_level=RiskLevel.HIGH,
                    details={
                        "tasks": [
                            {
                                "agent_id": target.id if isinstance(target, AgentIdentity) else target,
                                "prompt_preview": _preview(task.description),
                            }
                            for target, task in entries
                        ],
                    },
                ),
                parent_execution_id,
            )
        except BaseException:
            self.slots.release(parent_execution_id, len(entries))
            raise
        unreleased = set(range(len(entries)))

        async def run_entry(index: int, target: AgentIdentity | str, task: Task) -> tuple[int, Report]:
            try:
                return index, await self._run_batch_entry(
                    target, task, workflow_id=workflow_id, parent_execution_id=parent_execution_id
                )
            finally:
                unreleased.discard(index)
                self.slots.release(parent_execution_id)

        self.logger.info(
            "parallel_batch_started",
            parent_execution_id=parent_execution_id,
            count=len(entries),
        )
        pending = [
            asyncio.create_task(run_entry(index, target, task))
            for index, (target, task) in enumerate(entries)
        ]
        results: list[tuple[int, Report]] = []
        try:
            for next_done in asyncio.as_completed(pending):
                results.append(await next_done)
        except asyncio.CancelledError:
            for p in pending:
                p.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if unreleased:
                self.slots.release(parent_execution_id, len(unreleased))
            raise

        results.sort(key=lambda item: item[0])
        reports = [report for _, report in results]
        succeeded = sum(1 for r in reports if r.succeeded)
        if succeeded == len(reports):
            status = ReportStatus.SUCCESS
        elif succeeded == 0:
            status = ReportStatus.FAILED
        else:
            status = ReportStatus.PARTIAL

        self.logger.info(
            "parallel_batch_completed",
            parent_execution_id=parent_execution_id,
            count=len(reports),
            succeeded=succeeded,
            status=status.value,
        )
        return BatchResult(reports=reports, status=status)

    def list_children(self, parent_execution_id: str) -> dict[str, Any]:
        """Live children of a parent execution and the remaining capacity."""
        with self._children_lock:
            children = list(self._children.get(parent_execution_id, {}).values())
        return {
            "children": [
                {
                    "agent_id": c.agent_id,
                    "name": c.name,
                    "task": c.task,
                    "mode": c.mode,
                    "started_at": c.started_at.isoformat(),
                }
                for c in children
            ],
            "live": self.slots.live(parent_execution_id),
            "available": self.slots.available(parent_execution_id),
            "max": self.max_sub_agents,
        }

    async def _run_batch_entry(
        self,
        target: AgentIdentity | str,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str,
    ) -> Report:
        try:
            identity = target if isinstance(target, AgentIdentity) else self.registry.require(target)
        except AgentNotFoundError as e:
            return Report.failed(task, str(target), e.message)
        try:
            return await self._run_child(
                identity, task,
                workflow_id=workflow_id,
                parent_execution_id=parent_execution_id,
                mode="parallel",
            )
        except CircuitOpenError as e:
            self.logger.warning("batch_entry_circuit_open", agent_id=identity.id, error=e.message)
            return Report.failed(task, identity.id, e.message)

    async def _run_child(
        self,
        identity: AgentIdentity,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str,
        mode: str,
    ) -> Report:
        breaker = self.breakers.get(identity.agent_class)
        breaker.check()
        try:
            return await self._run_admitted(
                breaker, identity, task,
                workflow_id=workflow_id,
                parent_execution_id=parent_execution_id,
                mode=mode,
            )
        except BaseException:
            # No outcome was recorded; a HALF_OPEN trial must not stay in flight.
            breaker.abandon_trial()
            raise

    async def _run_admitted(
        self,
        breaker: CircuitBreaker,
        identity: AgentIdentity,
        task: Task,
        *,
        workflow_id: str,
        parent_execution_id: str,
        mode: str,
    ) -> Report:
        started = time.monotonic()
        child_key = self._track(parent_execution_id, LiveChild(identity.id, identity.name, task.description, mode))
        self._emit(
            workflow_id, parent_execution_id, identity,
            EventType.SUB_AGENT_START,
            {
                "sub_agent_id": identity.id,
                "name": identity.name,
                "task": task.description,
                "mode": mode,
                "parent_execution_id": parent_execution_id,
            },
        )
        await self._persist(
            {
                "sub_agent_id": identity.id,
                "parent_execution_id": parent_execution_id,
                "workflow_id": workflow_id,
                "task_id": task.id,
                "mode": mode,
                "status": ExecutionStatus.RUNNING.value,
            }
        )
        self.logger.info(
            "sub_agent_started",
            sub_agent_id=identity.id,
            parent_execution_id=parent_execution_id,
            mode=mode,
        )

        try:
            report = await self.execute_with_heartbeat(
                identity, task,
                workflow_id=workflow_id,
                parent_execution_id=parent_execution_id,
            )
        except asyncio.CancelledError:
            self._emit(
                workflow_id, parent_execution_id, identity,
                EventType.SUB_AGENT_ERROR,
                {"sub_agent_id": identity.id, "error": "cancelled", "duration_ms": self._elapsed(started)},
            )
            raise
        finally:
            self._untrack(parent_execution_id, child_key)

        duration_ms = self._elapsed(started)
        if report.status == ReportStatus.FAILED:
            breaker.record_failure()
            self._emit(
                workflow_id, parent_execution_id, identity,
                EventType.SUB_AGENT_ERROR,
                {"sub_agent_id": identity.id, "error": report.error_message, "duration_ms": duration_ms},
            )
        else:
            breaker.record_success()
            self._emit(
                workflow_id, parent_execution_id, identity,
                EventType.SUB_AGENT_COMPLETE,
                {
                    "sub_agent_id": identity.id,
                    "status": report.status.value,
                    "report": report.summary(),
                    "duration_ms": duration_ms,
                },
            )
        await self._persist(
            {
                "sub_agent_id": identity.id,
                "parent_execution_id": parent_execution_id,
                "workflow_id": workflow_id,
                "task_id": task.id,
                "mode": mode,
                "status": report.status.value,
                "duration_ms": duration_ms,
                "error": report.error_message,
            }
        )
        self.logger.info(
            "sub_agent_completed",
            sub_agent_id=identity.id,
            status=report.status.value,
            duration_ms=duration_ms,
        )
        return report

    async def _abort_inactive(
        self,
        inner: asyncio.Task,
        execution: Execution,
        identity: AgentIdentity,
        task: Task,
        idle: float,
        timeout: float,
        started: float,
    ) -> Report:
        timeout_error = InactivityTimeoutError(idle, timeout)
        self.logger.warning(
            "inactivity_timeout",
            execution_id=execution.id,
            agent_id=identity.id,
            idle_seconds=round(idle, 1),
            threshold_seconds=timeout,
        )
        if not execution.is_finished:
            execution.finish(ExecutionStatus.ERROR)
        inner.cancel()
        await asyncio.gather(inner, return_exceptions=True)
        self.event_sink.emit(
            execution.workflow_id,
            error(timeout_error.message, execution_id=execution.id, agent_id=identity.id),
        )
        return Report.failed(
            task,
            identity.id,
            timeout_error.message,
            ReportMetrics(duration_ms=int((time.monotonic() - started) * 1000)),
        )

    async def _confirm(
        self,
        caller: AgentIdentity,
        request: ConfirmationRequest,
        parent_execution_id: str,
    ) -> None:
        """
        Wait for a human decision unless the policy is permissive.

        Raises:
            ConfirmationRejectedError: Rejected, or no decision within
                ``confirmation_timeout`` seconds
        """
        if self.policy is None or self.confirmations is None:
            return
        if self.policy.current_mode() == PolicyMode.PERMISSIVE:
            return

        self.event_sink.emit(
            request.workflow_id,
            confirmation_required(request, execution_id=parent_execution_id, agent_id=caller.id),
        )
        approved, reason = False, "not confirmed in time"
        try:
            approved, reason = await self._await_decision(request, parent_execution_id)
        finally:
            self.event_sink.emit(
                request.workflow_id,
                confirmation_resolved(
                    request.id, approved, reason, execution_id=parent_execution_id, agent_id=caller.id
                ),
            )
        self.logger.info(
            "delegation_confirmation",
            request_id=request.id,
            operation=request.operation,
            approved=approved,
        )
        if not approved:
            raise ConfirmationRejectedError(request.operation, reason)

    async def _await_decision(
        self, request: ConfirmationRequest, parent_execution_id: str
    ) -> tuple[bool, str]:
        # Waiting on a human is not inactivity of the parent.
        waiter = asyncio.ensure_future(self.confirmations.request(request))
        deadline = time.monotonic() + self.confirmation_timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    waiter.cancel()
                    await asyncio.gather(waiter, return_exceptions=True)
                    return False, "not confirmed in time"
                done, _ = await asyncio.wait({waiter}, timeout=min(self.poll_interval, remaining))
                if waiter in done:
                    approved = waiter.result()
                    return approved, "approved" if approved else "rejected by user"
                with self._children_lock:
                    parent = self._activity.get(parent_execution_id)
                if parent is not None:
                    parent.record_activity()
        except asyncio.CancelledError:
            waiter.cancel()
            await asyncio.gather(waiter, return_exceptions=True)
            raise

    def _activity_for(self, execution: Execution, monitor: ActivityMonitor) -> ActivitySinkProtocol:
        # A child's progress also counts as progress of every ancestor waiting on it.
        with self._children_lock:
            parent = self._activity.get(execution.parent_execution_id or "")
            sink: ActivitySinkProtocol = monitor if parent is None else _ChainedActivity(monitor, parent)
            self._activity[execution.id] = sink
        return sink

    def _check_primary(self, caller: AgentIdentity, operation: str) -> None:
        if not caller.is_primary:
            self.logger.warning("delegation_denied", caller=caller.id, operation=operation)
            raise PermissionDeniedError(operation)

    def _track(self, parent_execution_id: str, child: LiveChild) -> str:
        key = uuid.uuid4().hex
        with self._children_lock:
            self._children.setdefault(parent_execution_id, {})[key] = child
        return key

    def _untrack(self, parent_execution_id: str, key: str) -> None:
        with self._children_lock:
            children = self._children.get(parent_execution_id)
            if children is None:
                return
            children.pop(key, None)
            if not children:
                del self._children[parent_execution_id]

    def _emit(
        self,
        workflow_id: str,
        parent_execution_id: str,
        identity: AgentIdentity,
        event_type: EventType,
        data: dict[str, Any],
    ) -> None:
        self.event_sink.emit(
            workflow_id,
            StreamEvent(type=event_type, data=data, execution_id=parent_execution_id, agent_id=identity.id),
        )

    async def _persist(self, record: dict[str, Any]) -> None:
        try:
            await self.store.persist("sub_agent_execution", record)
        except Exception as e:
            self.logger.error("store_persist_failed", kind="sub_agent_execution", error=str(e))

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
