"""Unit Tests for ConcurrencyGate."""

import pytest

from conductor.application.concurrency import ConcurrencyGate
from conductor.core.domain.errors import AdmissionRejectedError
from conductor.core.interfaces.policy import PolicyMode
from conductor.infrastructure.policy import StaticPolicyProvider


class TestConfirmationRequired:
    def test_single_workflow(self):
        gate = ConcurrencyGate(StaticPolicyProvider(PolicyMode.CONFIRMATION_REQUIRED))

        gate.register("wf_1")

        assert gate.max_concurrent() == 1
        assert not gate.can_start()
        with pytest.raises(AdmissionRejectedError) as exc_info:
            gate.register("wf_2")
        assert exc_info.value.limit == 1
        assert exc_info.value.current == 1

    def test_release_admits_next(self):
        gate = ConcurrencyGate(StaticPolicyProvider(PolicyMode.CONFIRMATION_REQUIRED))
        gate.register("wf_1")

        gate.release("wf_1")
        gate.register("wf_2")

        assert gate.running_count() == 1


class TestPermissive:
    def test_three_workflows(self):
        gate = ConcurrencyGate(StaticPolicyProvider(PolicyMode.PERMISSIVE))

        for i in range(3):
            gate.register(f"wf_{i}")

        assert gate.running_count() == 3
        with pytest.raises(AdmissionRejectedError):
            gate.register("wf_3")

    def test_register_is_idempotent(self):
        gate = ConcurrencyGate(StaticPolicyProvider(PolicyMode.PERMISSIVE))

        gate.register("wf_1")
        gate.register("wf_1")

        assert gate.running_count() == 1


def test_policy_change_applies_to_new_admissions():
    policy = StaticPolicyProvider(PolicyMode.PERMISSIVE)
    gate = ConcurrencyGate(policy)
    gate.register("wf_1")
    gate.register("wf_2")

    policy.set_mode(PolicyMode.CONFIRMATION_REQUIRED)

    # Running workflows are not evicted, new ones are refused.
    assert gate.running_count() == 2
    with pytest.raises(AdmissionRejectedError):
        gate.register("wf_3")
