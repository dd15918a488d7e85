"""
Execution Context

Per-execution bundle passed explicitly through every layer that can
suspend. It carries the Execution record, the workflow it belongs to and
the activity sink that the heartbeat supervisor watches.
"""

import time
from dataclasses import dataclass, field

from conductor.core.domain.models import Execution
from conductor.core.interfaces.activity import ActivitySinkProtocol, NullActivitySink


@dataclass
class ExecutionContext:
    execution: Execution
    activity: ActivitySinkProtocol = field(default_factory=NullActivitySink)

    @property
    def workflow_id(self) -> str:
        return self.execution.workflow_id

    @property
    def execution_id(self) -> str:
        return self.execution.id

    def record_activity(self) -> None:
        self.execution.last_activity_at = time.time()
        self.activity.record_activity()
