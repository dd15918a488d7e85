"""
Application Layer - Conductor Factory

Dependency injection for the whole engine. Reads a YAML profile from the
configuration directory, builds the infrastructure adapters and wires them
into the application services.

Profile layout (``configs/{profile}.yaml``):

    engine:          # EngineSettings fields
      max_iterations: 50
      policy_mode: permissive
      store: file
    llm:
      retry_policy:
        max_attempts: 3
        retry_on_errors: [RateLimitError]
    tools: [calculator, echo, current_time]

Permanent agents are loaded from ``configs/agents/*.yaml``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from conductor.application.background import BackgroundExecutionRegistry
from conductor.application.concurrency import ConcurrencyGate
from conductor.application.orchestrator import TaskOrchestrator
from conductor.application.registry import AgentRegistry
from conductor.application.settings import EngineSettings
from conductor.application.sub_agents import SubAgentExecutor
from conductor.application.workflows import WorkflowService
from conductor.core.domain.circuit_breaker import CircuitBreakerRegistry
from conductor.core.domain.tool_loop import ToolCallLoop
from conductor.core.interfaces.llm import ReasoningProviderProtocol
from conductor.core.interfaces.store import StoreProtocol
from conductor.infrastructure.confirmations import ConfirmationBroker
from conductor.infrastructure.events.bus import EventBus
from conductor.infrastructure.live_view import LiveViewBuffer
from conductor.infrastructure.llm.litellm_provider import LiteLLMProvider, RetryPolicy
from conductor.infrastructure.notifications import InMemoryNotifier
from conductor.infrastructure.persistence.file_agent_registry import FileAgentRegistry
from conductor.infrastructure.persistence.file_store import FileStore
from conductor.infrastructure.persistence.memory_store import InMemoryStore
from conductor.infrastructure.policy import StaticPolicyProvider
from conductor.infrastructure.tools.base import Tool
from conductor.infrastructure.tools.builtin import builtin_tools
from conductor.infrastructure.tools.local_invoker import LocalToolInvoker
from conductor.infrastructure.tools.sub_agent_tools import bind_sub_agent_tools


@dataclass
class ConductorRuntime:
    """Fully wired engine components."""

    settings: EngineSettings
    bus: EventBus
    store: StoreProtocol
    notifier: InMemoryNotifier
    policy: StaticPolicyProvider
    registry: AgentRegistry
    tools: LocalToolInvoker
    loop: ToolCallLoop
    sub_agents: SubAgentExecutor
    orchestrator: TaskOrchestrator
    gate: ConcurrencyGate
    background: BackgroundExecutionRegistry
    workflows: WorkflowService
    confirmations: ConfirmationBroker
    live_view: LiveViewBuffer


class ConductorFactory:
    """
    Builds ConductorRuntime instances from configuration profiles.

    Args:
        config_dir: Directory containing profile YAML files and agents/
    """

    def __init__(self, config_dir: str = "configs"):
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="conductor_factory")

    def create_runtime(
        self,
        profile: str | None = "dev",
        settings: EngineSettings | None = None,
        provider: ReasoningProviderProtocol | None = None,
        tools: list[Tool] | None = None,
    ) -> ConductorRuntime:
        """
        Create a runtime.

        Args:
            profile: Profile name, or None to use settings/environment only
            settings: Explicit settings (skip the profile's engine section)
            provider: Reasoning provider override (defaults to LiteLLM)
            tools: Tool list override (defaults to the profile's tool names)

        Returns:
            ConductorRuntime with every component wired.

        Raises:
            FileNotFoundError: If the profile YAML does not exist
            ValueError: If the profile names an unknown tool
        """
        config = self._load_profile(profile) if profile else {}
        if settings is None:
            settings = EngineSettings(**(config.get("engine") or {}))

        self.logger.info(
            "creating_runtime",
            profile=profile,
            model=settings.model,
            store=settings.store,
            policy_mode=settings.policy_mode.value,
        )

        bus = EventBus()
        store = self._create_store(settings)
        notifier = InMemoryNotifier()
        policy = StaticPolicyProvider(settings.policy_mode)
        confirmations = ConfirmationBroker()
        live_view = LiveViewBuffer(settings.live_view_buffer_size)
        registry = AgentRegistry(FileAgentRegistry(str(self.config_dir)).list_agents())
        invoker = LocalToolInvoker(tools if tools is not None else self._create_tools(config))
        provider = provider or self._create_provider(settings, config)

        loop = ToolCallLoop(
            provider=provider,
            event_sink=bus,
            store=store,
            max_iterations=settings.max_iterations,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        sub_agents = SubAgentExecutor(
            loop=loop,
            registry=registry,
            tools=invoker,
            event_sink=bus,
            store=store,
            breakers=CircuitBreakerRegistry(
                failure_threshold=settings.circuit_failure_threshold,
                cooldown_seconds=settings.circuit_cooldown_seconds,
            ),
            max_sub_agents=settings.max_sub_agents,
            inactivity_timeout=settings.inactivity_timeout_seconds,
            poll_interval=settings.activity_poll_seconds,
            policy=policy,
            confirmations=confirmations,
            confirmation_timeout=settings.confirmation_timeout_seconds,
        )
        sub_agents.tool_binder = bind_sub_agent_tools(sub_agents, invoker)

        orchestrator = TaskOrchestrator(registry, loop, sub_agents, invoker)
        gate = ConcurrencyGate(
            policy,
            permissive_limit=settings.permissive_max_concurrent,
            confirmation_limit=settings.confirmation_max_concurrent,
        )
        background = BackgroundExecutionRegistry(
            notifier, live_view=live_view, cleanup_after=settings.cleanup_after_seconds
        )
        bus.subscribe(background.update_from_event)
        workflows = WorkflowService(orchestrator, gate, background, registry, bus, store)

        return ConductorRuntime(
            settings=settings,
            bus=bus,
            store=store,
            notifier=notifier,
            policy=policy,
            registry=registry,
            tools=invoker,
            loop=loop,
            sub_agents=sub_agents,
            orchestrator=orchestrator,
            gate=gate,
            background=background,
            workflows=workflows,
            confirmations=confirmations,
            live_view=live_view,
        )

    def _load_profile(self, profile: str) -> dict[str, Any]:
        """
        Load configuration profile from YAML file.

        Raises:
            FileNotFoundError: If profile YAML not found
        """
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        with open(profile_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        self.logger.debug("profile_loaded", profile=profile, config_keys=list(config.keys()))
        return config

    def _create_store(self, settings: EngineSettings) -> StoreProtocol:
        if settings.store == "file":
            return FileStore(work_dir=settings.work_dir)
        return InMemoryStore()

    def _create_provider(self, settings: EngineSettings, config: dict[str, Any]) -> LiteLLMProvider:
        llm_config = config.get("llm") or {}
        retry_config = llm_config.get("retry_policy") or {}
        retry_policy = RetryPolicy(
            max_attempts=retry_config.get("max_attempts", 1),
            backoff_multiplier=retry_config.get("backoff_multiplier", 2.0),
            timeout=retry_config.get("timeout", 120),
            retry_on_errors=retry_config.get("retry_on_errors", []),
        )
        return LiteLLMProvider(
            model=llm_config.get("model", settings.model),
            retry_policy=retry_policy,
            extra_params=llm_config.get("params"),
        )

    def _create_tools(self, config: dict[str, Any]) -> list[Tool]:
        available = {tool.name: tool for tool in builtin_tools()}
        names = config.get("tools")
        if names is None:
            return list(available.values())
        unknown = [name for name in names if name not in available]
        if unknown:
            raise ValueError(f"Unknown tools in profile: {', '.join(unknown)}")
        return [available[name] for name in names]
