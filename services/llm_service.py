import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from config import settings
from core.domain import LLMConfig
from core.exceptions import ConfigurationError, LLMError
from core.interfaces import ILLMService

logger = logging.getLogger(settings.LOGGER_NAME)

class OpenAILLMService(ILLMService):
    """A service to interact with an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = settings.OPENAI_MAX_RETRIES,
        timeout: float = settings.OPENAI_TIMEOUT,
        client: Optional[Any] = None,
    ):
        """
        Initializes the LLM service.

        Args:
            api_key: Provider API key. Required unless a client is injected.
            base_url: Optional base URL for OpenAI-compatible servers.
            max_retries: Retries on transient failures, handled by the openai client.
            timeout: The request timeout in seconds.
            client: Pre-built AsyncOpenAI-like client (tests, shared pools).
        """
        if client is None and not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for the LLM service")

        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
            timeout=timeout,
        )

    async def chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> str:
        """
        Sends the messages to the LLM and returns the full answer.
        """
        logger.info(f"Sending {len(messages)} messages to LLM model '{config.model}'...")
        try:
            response = await self._client.chat.completions.create(
                model=config.model,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except openai.OpenAIError as e:
            logger.error(f"LLM request failed: {e}")
            raise LLMError(f"Chat completion failed: {e}") from e

        if not response.choices:
            raise LLMError("LLM response contained no choices")

        return response.choices[0].message.content or ""

    async def stream_chat(self, messages: List[Dict[str, str]], config: LLMConfig) -> AsyncIterator[str]:
        """
        Streams the answer as text deltas.

        The upstream HTTP stream is closed when iteration ends, fails, or the
        consumer closes this generator early.
        """
        logger.info(f"Opening stream to LLM model '{config.model}'...")
        try:
            stream = await self._client.chat.completions.create(
                model=config.model,
                messages=messages,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                stream=True,
            )
        except openai.OpenAIError as e:
            logger.error(f"LLM stream request failed: {e}")
            raise LLMError(f"Chat completion stream failed: {e}") from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                token = chunk.choices[0].delta.content
                if token:
                    yield token
        except openai.OpenAIError as e:
            logger.error(f"LLM stream interrupted: {e}")
            raise LLMError(f"Chat completion stream interrupted: {e}") from e
        finally:
            await stream.close()
