"""
Domain Errors for Task Execution

Every failure the engine can report is expressed as a subclass of
ConductorError. The tool-call loop recovers from FormatError and
ToolExecutionError locally; every other error terminates the execution it
occurred in and surfaces through the Report status and error message.

The messages are written so that operators can tell apart:
- the model misbehaving (format errors, iteration cap)
- a tool failing
- a hang being aborted (inactivity timeout)
- resource protection (admission limits, open circuit)
"""


class ConductorError(Exception):
    """Base class for all engine errors."""

    retriable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FormatError(ConductorError):
    """Model produced tool-call markup that could not be parsed."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"format error: expected {expected}, got {actual}")


class ToolExecutionError(ConductorError):
    """A tool invocation failed."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"tool '{tool_name}' failed: {message}")


class ProviderError(ConductorError):
    """The reasoning provider failed to produce a response."""

    def __init__(self, message: str):
        super().__init__(f"reasoning provider error: {message}")


class InactivityTimeoutError(ConductorError):
    """An execution made no progress for longer than the allowed window."""

    def __init__(self, elapsed_seconds: float, threshold_seconds: float):
        self.elapsed_seconds = elapsed_seconds
        self.threshold_seconds = threshold_seconds
        super().__init__(
            f"inactive for {int(elapsed_seconds)}s (threshold: "
            f"{int(threshold_seconds)}s), aborted to prevent hang"
        )


class CircuitOpenError(ConductorError):
    """Delegation refused because the circuit for the agent class is open."""

    retriable = True

    def __init__(self, agent_class: str, remaining_cooldown: float):
        self.agent_class = agent_class
        self.remaining_cooldown = remaining_cooldown
        super().__init__(
            f"circuit open for '{agent_class}': too many recent failures, "
            f"retry in {int(remaining_cooldown)}s"
        )


class AdmissionRejectedError(ConductorError):
    """A concurrency limit is reached."""

    retriable = True

    def __init__(self, message: str, limit: int, current: int):
        self.limit = limit
        self.current = current
        super().__init__(message)


class PermissionDeniedError(ConductorError):
    """Caller is not allowed to use a delegation operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"Only the primary agent can {operation}. "
            "Sub-agents cannot use this operation."
        )


class AgentNotFoundError(ConductorError):
    """No agent identity is registered under the requested id."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class InvalidTransitionError(ConductorError):
    """An execution was asked to move to a status it cannot reach."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"invalid execution transition: {current} -> {target}")


class ConfirmationRejectedError(ConductorError):
    """A delegation was declined by the user or not confirmed in time."""

    def __init__(self, operation: str, reason: str = "rejected by user"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Sub-agent operation was {reason}. Operation: {operation}")
