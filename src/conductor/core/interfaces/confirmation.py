"""Confirmation resolver protocol for delegations that need human approval."""

from typing import Protocol

from conductor.core.domain.models import ConfirmationRequest


class ConfirmationResolverProtocol(Protocol):
    async def request(self, request: ConfirmationRequest) -> bool:
        """Wait for a decision. True approves the operation."""
        ...
