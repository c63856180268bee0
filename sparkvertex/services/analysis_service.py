"""AI analysis proxy: validation, caching and the model call.

Low-temperature requests are close to deterministic, so their responses are
cached by a hash of (model, system prompt, user prompt, temperature).
"""

import logging

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.core.config import settings
from sparkvertex.core.errors import ValidationAppError
from sparkvertex.schemas.analysis import AnalyzeRequest, AnalyzeResponse
from sparkvertex.utils.simple_cache import SimpleTTLCache, build_cache_key

logger = logging.getLogger(__name__)

# Bump when request handling changes in a way that invalidates cached output
CACHE_VERSION = "v1"

CACHEABLE_MAX_TEMPERATURE = 0.3


class AnalysisService:
    """Proxy prompts to the configured chat model.

    Attributes:
        llm: Chat model client.
        cache: TTL cache of responses for low-temperature requests.
        max_prompt_chars: Upper bound on ``user_prompt`` length.
    """

    def __init__(
        self,
        llm: AbstractLLMClient,
        cache: SimpleTTLCache[str],
        *,
        max_prompt_chars: int | None = None,
        cache_salt: str | None = None,
    ) -> None:
        self.llm = llm
        self.cache = cache
        self.max_prompt_chars = max_prompt_chars or settings.app.max_prompt_chars
        self._cache_salt = f"{CACHE_VERSION}:{cache_salt or settings.llm.model}"

    def _validate(self, request: AnalyzeRequest) -> str:
        user_prompt = request.user_prompt
        if not user_prompt or not user_prompt.strip():
            raise ValidationAppError(
                code="missing_user_prompt",
                message="user_prompt is required",
            )
        if len(user_prompt) > self.max_prompt_chars:
            raise ValidationAppError(
                code="prompt_too_long",
                message="user_prompt is too long",
                details={"limit": self.max_prompt_chars, "actual": len(user_prompt)},
            )
        return user_prompt

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        """Validate, consult the cache, and call the model.

        Raises:
            ValidationAppError: Missing or oversized user prompt.
            LLMAppError: Provider failure.
        """
        user_prompt = self._validate(request)

        cacheable = request.temperature <= CACHEABLE_MAX_TEMPERATURE
        cache_key = None
        if cacheable:
            cache_key = build_cache_key(
                request.system_prompt,
                user_prompt,
                request.temperature,
                salt=self._cache_salt,
            )
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("analysis.cache_hit", extra={"prompt_chars": len(user_prompt)})
                return AnalyzeResponse(content=cached, cached=True)

        content = await self.llm.generate_text(
            request.system_prompt,
            user_prompt,
            temperature=request.temperature,
        )

        if cache_key is not None:
            self.cache.set(cache_key, content)

        logger.info(
            "analysis.completed",
            extra={
                "prompt_chars": len(user_prompt),
                "completion_chars": len(content),
                "temperature": request.temperature,
            },
        )
        return AnalyzeResponse(content=content, cached=False)
