"""
LiteLLM Reasoning Provider

Implements the reasoning provider contract on top of ``litellm.acompletion``
so any model LiteLLM supports can drive the tool-call loop.

Responses are returned as result dictionaries and never raise. Reasoning
models that expose ``reasoning_content`` have it mapped to ``thinking``.

Retries are off by default (``retry_on_errors`` empty). Listing error type
names or message fragments there enables exponential backoff for those
errors only.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import litellm
import structlog


@dataclass
class RetryPolicy:
    """Retry policy configuration."""

    max_attempts: int = 1
    backoff_multiplier: float = 2.0
    timeout: int = 120
    retry_on_errors: list[str] = field(default_factory=list)


def _usage_to_dict(usage: Any) -> dict[str, int]:
    if not usage:
        return {}
    if isinstance(usage, dict):
        prompt = usage.get("prompt_tokens", 0)
        completion = usage.get("completion_tokens", 0)
    else:
        prompt = getattr(usage, "prompt_tokens", 0)
        completion = getattr(usage, "completion_tokens", 0)
    return {"input_tokens": prompt or 0, "output_tokens": completion or 0}


class LiteLLMProvider:
    """
    Reasoning provider backed by LiteLLM.

    Args:
        model: LiteLLM model name (e.g. "gpt-4.1-mini", "anthropic/claude-...")
        retry_policy: Optional transport retry policy
        extra_params: Additional keyword arguments for every completion
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        retry_policy: RetryPolicy | None = None,
        extra_params: dict[str, Any] | None = None,
    ):
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.extra_params = extra_params or {}
        self.logger = structlog.get_logger().bind(component="litellm_provider")

    def _build_messages(
        self, messages: list[dict[str, Any]], system_prompt: str | None
    ) -> list[dict[str, Any]]:
        if not system_prompt:
            return list(messages)
        return [{"role": "system", "content": system_prompt}, *messages]

    def _params(self, temperature: float, max_tokens: int | None) -> dict[str, Any]:
        params: dict[str, Any] = {"temperature": temperature, **self.extra_params}
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        return params

    def _should_retry(self, attempt: int, error: Exception) -> bool:
        if attempt >= self.retry_policy.max_attempts - 1:
            return False
        error_type = type(error).__name__
        error_msg = str(error)
        return any(
            err in error_type or err in error_msg for err in self.retry_policy.retry_on_errors
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """
        Perform one completion.

        Returns:
            Dict with:
            - success: bool
            - content: str (if successful)
            - thinking: str | None (reasoning models only)
            - usage: Dict with input_tokens/output_tokens
            - error: str (if failed)
        """
        full_messages = self._build_messages(messages, system_prompt)
        params = self._params(temperature, max_tokens)

        for attempt in range(self.retry_policy.max_attempts):
            try:
                start_time = time.time()
                self.logger.info(
                    "llm_completion_started",
                    model=self.model,
                    attempt=attempt + 1,
                    message_count=len(full_messages),
                )
                response = await litellm.acompletion(
                    model=self.model,
                    messages=full_messages,
                    timeout=self.retry_policy.timeout,
                    **params,
                )
                message = response.choices[0].message
                usage = _usage_to_dict(getattr(response, "usage", None))
                latency_ms = int((time.time() - start_time) * 1000)
                self.logger.info(
                    "llm_completion_success",
                    model=self.model,
                    tokens=usage.get("input_tokens", 0) + usage.get("output_tokens", 0),
                    latency_ms=latency_ms,
                )
                return {
                    "success": True,
                    "content": message.content or "",
                    "thinking": getattr(message, "reasoning_content", None),
                    "usage": usage,
                    "latency_ms": latency_ms,
                }
            except Exception as e:
                if self._should_retry(attempt, e):
                    backoff_time = self.retry_policy.backoff_multiplier**attempt
                    self.logger.warning(
                        "llm_completion_retry",
                        model=self.model,
                        error_type=type(e).__name__,
                        attempt=attempt + 1,
                        backoff_seconds=backoff_time,
                    )
                    await asyncio.sleep(backoff_time)
                    continue
                self.logger.error(
                    "llm_completion_failed",
                    model=self.model,
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    attempts=attempt + 1,
                )
                return {"success": False, "error": str(e), "error_type": type(e).__name__}

        return {"success": False, "error": "Max retries exceeded"}

    async def complete_stream(
        self,
        messages: list[dict[str, Any]],
        system_prompt: str | None = None,
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Stream a completion as chunk dictionaries.

        Yields:
            {"type": "token", "content": str}
            {"type": "thinking", "content": str}
            {"type": "usage", "usage": {...}}
            {"type": "error", "message": str}
        """
        full_messages = self._build_messages(messages, system_prompt)
        params = self._params(temperature, max_tokens)
        self.logger.info("llm_stream_started", model=self.model, message_count=len(full_messages))

        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=full_messages,
                timeout=self.retry_policy.timeout,
                stream=True,
                stream_options={"include_usage": True},
                **params,
            )
            async for chunk in response:
                usage = getattr(chunk, "usage", None)
                if usage:
                    yield {"type": "usage", "usage": _usage_to_dict(usage)}
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield {"type": "thinking", "content": reasoning}
                if getattr(delta, "content", None):
                    yield {"type": "token", "content": delta.content}
        except Exception as e:
            self.logger.error("llm_stream_failed", model=self.model, error=str(e)[:200])
            yield {"type": "error", "message": str(e)}
