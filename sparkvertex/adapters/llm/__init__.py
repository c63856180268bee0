"""LLM adapter layer - abstracts over OpenAI-compatible chat providers."""

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.adapters.llm.factory import create_llm_client
from sparkvertex.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "OpenAIClient",
    "create_llm_client",
]
