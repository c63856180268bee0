"""Integration tests for the LLM adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from sparkvertex.adapters.llm import OpenAIClient, create_llm_client
from sparkvertex.core.errors import ConfigurationAppError, LLMAppError

_REQUEST = httpx.Request("POST", "https://api.deepseek.com/chat/completions")


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class TestOpenAIClientIntegration:
    """OpenAI-compatible client with the SDK call mocked."""

    @pytest.mark.asyncio
    async def test_generate_text_success(self) -> None:
        client = OpenAIClient(api_key="test-key-123", model="deepseek-chat")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("  hello there \n"),
        ) as mock_create:
            result = await client.generate_text("be brief", "hi", temperature=0.2)

        assert result == "hello there"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["model"] == "deepseek-chat"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]
        assert "max_tokens" not in kwargs

    @pytest.mark.asyncio
    async def test_system_prompt_is_optional(self) -> None:
        client = OpenAIClient(api_key="k", model="m")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("ok"),
        ) as mock_create:
            await client.generate_text(None, "hi", max_tokens=50)

        kwargs = mock_create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["max_tokens"] == 50

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_completion_raises(self, content) -> None:
        client = OpenAIClient(api_key="k", model="m")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(content),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await client.generate_text(None, "hi")

        assert exc_info.value.code == "llm_empty_response"

    @pytest.mark.asyncio
    async def test_provider_status_error(self) -> None:
        client = OpenAIClient(api_key="k", model="m")
        error = openai.InternalServerError(
            "upstream failed",
            response=httpx.Response(503, request=_REQUEST),
            body=None,
        )

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=error,
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await client.generate_text(None, "hi")

        assert exc_info.value.code == "llm_provider_error"
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        client = OpenAIClient(api_key="k", model="m")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=openai.APIConnectionError(request=_REQUEST),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await client.generate_text(None, "hi")

        assert exc_info.value.code == "llm_unavailable"


class TestLLMFactory:
    @patch("sparkvertex.adapters.llm.factory.settings")
    def test_deepseek_uses_default_base_url(self, mock_settings) -> None:
        mock_settings.llm.provider = "DeepSeek"
        mock_settings.llm.api_key = "k"
        mock_settings.llm.model = "deepseek-chat"
        mock_settings.llm.base_url = None
        mock_settings.llm.timeout_seconds = 30
        mock_settings.llm.max_retries = 3

        client = create_llm_client()

        assert isinstance(client, OpenAIClient)
        assert str(client.client.base_url).startswith("https://api.deepseek.com")

    @patch("sparkvertex.adapters.llm.factory.settings")
    def test_base_url_override(self, mock_settings) -> None:
        mock_settings.llm.provider = "openai"
        mock_settings.llm.api_key = "k"
        mock_settings.llm.model = "gpt-4o-mini"
        mock_settings.llm.base_url = "http://localhost:8080/v1"
        mock_settings.llm.timeout_seconds = 30
        mock_settings.llm.max_retries = 0

        client = create_llm_client()

        assert str(client.client.base_url).startswith("http://localhost:8080/v1")

    @patch("sparkvertex.adapters.llm.factory.settings")
    def test_unknown_provider(self, mock_settings) -> None:
        mock_settings.llm.provider = "anthropic"
        mock_settings.llm.api_key = "k"

        with pytest.raises(ConfigurationAppError) as exc_info:
            create_llm_client()

        assert exc_info.value.code == "llm_unknown_provider"

    @patch("sparkvertex.adapters.llm.factory.settings")
    def test_missing_api_key(self, mock_settings) -> None:
        mock_settings.llm.provider = "deepseek"
        mock_settings.llm.api_key = None

        with pytest.raises(ConfigurationAppError) as exc_info:
            create_llm_client()

        assert exc_info.value.code == "llm_missing_api_key"
