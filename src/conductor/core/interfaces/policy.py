"""Policy provider protocol deciding workflow concurrency."""

from enum import Enum
from typing import Protocol


class PolicyMode(str, Enum):
    """Execution policy of the host environment."""

    PERMISSIVE = "permissive"
    CONFIRMATION_REQUIRED = "confirmation_required"


class PolicyProviderProtocol(Protocol):
    def current_mode(self) -> PolicyMode:
        ...
