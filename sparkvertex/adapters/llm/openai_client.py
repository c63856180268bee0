"""OpenAI-compatible chat client adapter (OpenAI, DeepSeek)."""

import logging
import time
from typing import Any

import openai
from openai import AsyncOpenAI

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.core.errors import LLMAppError

logger = logging.getLogger(__name__)


class OpenAIClient(AbstractLLMClient):
    """Client for chat completions on any OpenAI-compatible endpoint.

    Retries on 429, 5xx, connection errors and timeouts are delegated to the
    SDK, which backs off exponentially between attempts.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        """Initialize the async client.

        Args:
            api_key: Provider API key.
            model: Model name (e.g., "deepseek-chat", "gpt-4o-mini").
            base_url: Optional API root; None uses the OpenAI default.
            timeout_seconds: Per-request timeout in seconds.
            max_retries: Retry attempts for transient failures.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=max_retries,
        )
        self.model = model

    async def generate_text(
        self,
        system_prompt: str | None,
        user_prompt: str,
        *,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens

        started = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.APIStatusError as exc:
            logger.error(
                "llm.request_failed",
                extra={"model": self.model, "status": exc.status_code},
            )
            raise LLMAppError(
                code="llm_provider_error",
                message=f"AI service error ({exc.status_code})",
                details={"model": self.model},
            ) from exc
        except openai.APIError as exc:
            # Connection failures and timeouts after retries are exhausted
            logger.error(
                "llm.request_failed",
                extra={"model": self.model, "reason": type(exc).__name__},
            )
            raise LLMAppError(
                code="llm_unavailable",
                message="AI service unavailable",
                details={"model": self.model},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMAppError(
                code="llm_empty_response",
                message="AI service returned an empty response",
                details={"model": self.model},
            )

        logger.info(
            "llm.completed",
            extra={
                "model": self.model,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "completion_chars": len(content),
            },
        )
        return content.strip()
