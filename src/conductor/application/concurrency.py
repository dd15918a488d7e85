"""
Application Layer - Workflow Concurrency Gate

Admission control for top-level workflows. The limit depends on the host's
policy mode and is re-read on every admission attempt:

- permissive (operations auto-approved): 3 concurrent workflows
- confirmation required: 1 workflow, since a pending confirmation halts
  progress and several halted workflows compound confusion

Changing the mode never cancels running workflows; it only affects new
admissions.
"""

import threading

import structlog

from conductor.core.domain.errors import AdmissionRejectedError
from conductor.core.interfaces.policy import PolicyMode, PolicyProviderProtocol

logger = structlog.get_logger()

MAX_CONCURRENT_PERMISSIVE = 3
MAX_CONCURRENT_CONFIRMATION = 1


class ConcurrencyGate:
    def __init__(
        self,
        policy: PolicyProviderProtocol,
        permissive_limit: int = MAX_CONCURRENT_PERMISSIVE,
        confirmation_limit: int = MAX_CONCURRENT_CONFIRMATION,
    ):
        self.policy = policy
        self.permissive_limit = permissive_limit
        self.confirmation_limit = confirmation_limit
        self._lock = threading.Lock()
        self._running: set[str] = set()
        self.logger = logger.bind(component="concurrency_gate")

    def max_concurrent(self) -> int:
        if self.policy.current_mode() == PolicyMode.PERMISSIVE:
            return self.permissive_limit
        return self.confirmation_limit

    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    def can_start(self) -> bool:
        limit = self.max_concurrent()
        with self._lock:
            return len(self._running) < limit

    def register(self, workflow_id: str) -> None:
        """
        Admit a workflow.

        Raises:
            AdmissionRejectedError: If the current limit is reached
        """
        limit = self.max_concurrent()
        with self._lock:
            if workflow_id in self._running:
                return
            current = len(self._running)
            if current >= limit:
                raise AdmissionRejectedError(
                    f"Workflow limit reached: {current} of {limit} concurrent workflows "
                    f"running under {self.policy.current_mode().value} policy. "
                    "Wait for a workflow to finish.",
                    limit=limit,
                    current=current,
                )
            self._running.add(workflow_id)
        self.logger.info("workflow_admitted", workflow_id=workflow_id, running=current + 1, limit=limit)

    def release(self, workflow_id: str) -> None:
        with self._lock:
            self._running.discard(workflow_id)
            running = len(self._running)
        self.logger.debug("workflow_released", workflow_id=workflow_id, running=running)
