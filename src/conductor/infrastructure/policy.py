"""Policy provider backed by a mutable in-process setting."""

import threading

from conductor.core.interfaces.policy import PolicyMode


class StaticPolicyProvider:
    def __init__(self, mode: PolicyMode = PolicyMode.CONFIRMATION_REQUIRED):
        self._lock = threading.Lock()
        self._mode = mode

    def current_mode(self) -> PolicyMode:
        with self._lock:
            return self._mode

    def set_mode(self, mode: PolicyMode) -> None:
        with self._lock:
            self._mode = mode
