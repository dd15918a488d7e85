"""Unit Tests for ConfirmationBroker."""

import asyncio
import threading

import pytest

from conductor.core.domain.models import ConfirmationRequest
from conductor.infrastructure.confirmations import ConfirmationBroker


def make_request(workflow_id="wf_1"):
    return ConfirmationRequest(
        workflow_id=workflow_id, agent_id="primary", operation="delegate_task", message="Delegate"
    )


@pytest.mark.asyncio
async def test_resolve_completes_pending_request():
    broker = ConfirmationBroker()
    request = make_request()
    waiter = asyncio.create_task(broker.request(request))
    await asyncio.sleep(0)

    assert [r.id for r in broker.pending()] == [request.id]
    assert broker.resolve(request.id, False)

    assert await asyncio.wait_for(waiter, timeout=1) is False
    assert broker.pending() == []


@pytest.mark.asyncio
async def test_resolve_from_another_thread():
    broker = ConfirmationBroker()
    request = make_request()
    waiter = asyncio.create_task(broker.request(request))
    await asyncio.sleep(0)

    worker = threading.Thread(target=broker.resolve, args=(request.id, True))
    worker.start()
    worker.join()

    assert await asyncio.wait_for(waiter, timeout=1) is True


@pytest.mark.asyncio
async def test_pending_filters_by_workflow():
    broker = ConfirmationBroker()
    first, second = make_request("wf_1"), make_request("wf_2")
    waiters = [asyncio.create_task(broker.request(r)) for r in (first, second)]
    await asyncio.sleep(0)

    assert [r.id for r in broker.pending("wf_2")] == [second.id]

    for waiter in waiters:
        waiter.cancel()
    await asyncio.gather(*waiters, return_exceptions=True)
    assert broker.pending() == []


def test_unknown_request_is_not_resolved():
    assert not ConfirmationBroker().resolve("confirm_missing", True)
