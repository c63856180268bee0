"""Unit tests for AnalysisService."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.core.errors import LLMAppError, ValidationAppError
from sparkvertex.schemas.analysis import AnalyzeRequest
from sparkvertex.services.analysis_service import AnalysisService
from sparkvertex.utils.simple_cache import SimpleTTLCache


def _service(content: str = "model output", max_prompt_chars: int = 1000) -> AnalysisService:
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_text = AsyncMock(return_value=content)
    return AnalysisService(
        llm=llm,
        cache=SimpleTTLCache(ttl_seconds=60, max_entries=10),
        max_prompt_chars=max_prompt_chars,
        cache_salt="test-model",
    )


class TestAnalysisServiceValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", [None, "", "   "])
    async def test_missing_user_prompt(self, prompt) -> None:
        service = _service()

        with pytest.raises(ValidationAppError) as exc_info:
            await service.analyze(AnalyzeRequest(user_prompt=prompt))

        assert exc_info.value.code == "missing_user_prompt"
        service.llm.generate_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_prompt_too_long(self) -> None:
        service = _service(max_prompt_chars=10)

        with pytest.raises(ValidationAppError) as exc_info:
            await service.analyze(AnalyzeRequest(user_prompt="x" * 11))

        assert exc_info.value.code == "prompt_too_long"
        assert exc_info.value.details == {"limit": 10, "actual": 11}

    @pytest.mark.asyncio
    async def test_prompt_at_limit_is_accepted(self) -> None:
        service = _service(max_prompt_chars=10)

        result = await service.analyze(AnalyzeRequest(user_prompt="x" * 10))

        assert result.content == "model output"

    def test_temperature_bounds_enforced_by_schema(self) -> None:
        with pytest.raises(ValueError):
            AnalyzeRequest(user_prompt="hi", temperature=2.5)
        with pytest.raises(ValueError):
            AnalyzeRequest(user_prompt="hi", temperature=-0.1)


class TestAnalysisServiceGeneration:
    @pytest.mark.asyncio
    async def test_passes_prompts_and_temperature(self) -> None:
        service = _service()

        result = await service.analyze(
            AnalyzeRequest(system_prompt="sys", user_prompt="hello", temperature=0.9)
        )

        assert result.content == "model output"
        assert result.cached is False
        service.llm.generate_text.assert_awaited_once_with("sys", "hello", temperature=0.9)

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self) -> None:
        service = _service()
        service.llm.generate_text.side_effect = LLMAppError(code="llm_unavailable", message="down")

        with pytest.raises(LLMAppError):
            await service.analyze(AnalyzeRequest(user_prompt="hello"))


class TestAnalysisServiceCache:
    @pytest.mark.asyncio
    async def test_low_temperature_responses_are_cached(self) -> None:
        service = _service()
        request = AnalyzeRequest(system_prompt="sys", user_prompt="hello", temperature=0.3)

        first = await service.analyze(request)
        second = await service.analyze(request)

        assert first.cached is False
        assert second.cached is True
        assert second.content == "model output"
        assert service.llm.generate_text.await_count == 1

    @pytest.mark.asyncio
    async def test_high_temperature_is_never_cached(self) -> None:
        service = _service()
        request = AnalyzeRequest(user_prompt="hello", temperature=0.7)

        await service.analyze(request)
        second = await service.analyze(request)

        assert second.cached is False
        assert service.llm.generate_text.await_count == 2
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_cache_key_includes_system_prompt(self) -> None:
        service = _service()

        await service.analyze(AnalyzeRequest(system_prompt="a", user_prompt="hello", temperature=0))
        other = await service.analyze(
            AnalyzeRequest(system_prompt="b", user_prompt="hello", temperature=0)
        )

        assert other.cached is False
        assert service.llm.generate_text.await_count == 2
