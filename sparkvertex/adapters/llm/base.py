from abc import ABC, abstractmethod


class AbstractLLMClient(ABC):
	"""Interface for chat-completion clients returning plain text."""

	@abstractmethod
	async def generate_text(
		self,
		system_prompt: str | None,
		user_prompt: str,
		*,
		temperature: float = 0.7,
		max_tokens: int | None = None,
	) -> str:
		"""Run one chat completion and return the assistant message.

		Args:
			system_prompt: Optional system message.
			user_prompt: User message.
			temperature: Sampling temperature (0-2).
			max_tokens: Optional completion cap.

		Returns:
			str: Assistant message content, stripped.

		Raises:
			LLMAppError: If the provider call fails or returns no content.
		"""
		...
