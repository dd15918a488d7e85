"""
Pending delegation confirmations.

ConfirmationBroker parks every confirmation request on an asyncio future
until a presentation layer (HTTP API) resolves it. Resolution is safe from
any thread: sync FastAPI endpoints run in a worker thread, so the future is
completed on its own event loop.
"""

import asyncio
import threading

import structlog

from conductor.core.domain.models import ConfirmationRequest

logger = structlog.get_logger()


class ConfirmationBroker:
    def __init__(self):
        self._lock = threading.Lock()
        self._pending: dict[str, tuple[ConfirmationRequest, asyncio.Future]] = {}
        self.logger = logger.bind(component="confirmation_broker")

    async def request(self, request: ConfirmationRequest) -> bool:
        future = asyncio.get_running_loop().create_future()
        with self._lock:
            self._pending[request.id] = (request, future)
        self.logger.info(
            "confirmation_pending",
            request_id=request.id,
            workflow_id=request.workflow_id,
            operation=request.operation,
        )
        try:
            return await future
        finally:
            with self._lock:
                self._pending.pop(request.id, None)

    def pending(self, workflow_id: str | None = None) -> list[ConfirmationRequest]:
        with self._lock:
            requests = [request for request, _ in self._pending.values()]
        if workflow_id is None:
            return requests
        return [r for r in requests if r.workflow_id == workflow_id]

    def resolve(self, request_id: str, approved: bool) -> bool:
        """Approve or reject a pending request. Returns False if it is unknown."""
        with self._lock:
            entry = self._pending.get(request_id)
        if entry is None:
            return False
        _, future = entry

        def settle() -> None:
            if not future.done():
                future.set_result(approved)

        future.get_loop().call_soon_threadsafe(settle)
        self.logger.info("confirmation_resolved", request_id=request_id, approved=approved)
        return True
