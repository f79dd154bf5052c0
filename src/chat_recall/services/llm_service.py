"""OpenAI chat completion adapter."""

import logging
import time
from typing import Optional

import openai
from openai import AsyncOpenAI

from chat_recall.storage.models import LlmResponse, TokenUsage
from chat_recall.utils.errors import ConfigurationError, GenerationError


logger = logging.getLogger("chat-recall.llm")

PROVIDER_ID = "openai"


class OpenAIChatModel:
    """
    LanguageModel backed by the OpenAI chat completions API.

    Retries are left to the OpenAI client (``max_retries``); anything that
    still fails is raised as GenerationError.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: int = 30,
        max_retries: int = 3,
        client: Optional[AsyncOpenAI] = None
    ):
        if not api_key and client is None:
            raise ConfigurationError("OpenAI API key is required")

        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self.model = model

    async def complete(self, system_prompt: str, user_prompt: str, temperature: float) -> LlmResponse:
        """
        Run one chat completion.

        Args:
            system_prompt: System message
            user_prompt: User message
            temperature: Sampling temperature

        Returns:
            LlmResponse with content and token usage

        Raises:
            ConfigurationError: Invalid API key
            GenerationError: Any other provider failure or an empty answer
        """
        start_time = time.time()

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt}
                ],
                temperature=temperature
            )
        except openai.AuthenticationError as e:
            raise ConfigurationError(
                "Invalid OpenAI API key. Check OPENAI_API_KEY environment variable."
            ) from e
        except openai.OpenAIError as e:
            logger.error(f"Chat completion failed: model={self.model}, error={e}")
            raise GenerationError(f"Chat completion failed: {e}") from e

        if not response.choices:
            raise GenerationError("Chat completion returned no choices")

        content = response.choices[0].message.content or ""
        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0
            )

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"Chat completion: model={self.model}, temperature={temperature}, "
            f"tokens={usage.total_tokens}, latency={latency_ms}ms"
        )

        return LlmResponse(
            content=content,
            usage=usage,
            provider_id=PROVIDER_ID,
            model=getattr(response, "model", None) or self.model
        )
