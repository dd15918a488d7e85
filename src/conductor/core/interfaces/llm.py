"""
Reasoning Provider Protocol

Defines the contract for language model backends. The engine never sees a
wire format; it sends a list of chat messages and receives a plain result
dictionary.

Result dictionary of ``complete``:
    {
        "success": bool,
        "content": str,            # final text of the turn
        "thinking": str | None,    # optional reasoning narration
        "usage": {"input_tokens": int, "output_tokens": int},
        "error": str,              # only when success is False
    }

Providers may additionally implement ``complete_stream`` yielding chunk
dictionaries of the form ``{"type": "token" | "thinking" | "usage" | "error", ...}``.
Callers must check for it with ``hasattr`` before using it.
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol


class ReasoningProviderProtocol(Protocol):
    """Protocol for reasoning (LLM) providers."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """
        Produce the next assistant turn.

        Args:
            messages: Conversation so far, as role/content dictionaries
            system_prompt: Instructions prepended as the system message
            temperature: Sampling temperature
            max_tokens: Optional completion limit

        Returns:
            Result dictionary as described in the module docstring.
        """
        ...


class StreamingReasoningProviderProtocol(ReasoningProviderProtocol, Protocol):
    """Provider that can additionally stream tokens."""

    def complete_stream(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        ...
