# tests/test_llm_service.py
"""
Tests for services/llm_service.py
Buffered and streamed chat completions with a mocked client.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from core.domain import LLMConfig
from core.exceptions import ConfigurationError, LLMError
from services.llm_service import OpenAILLMService

MESSAGES = [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi?"}]


class FakeCompletionStream:
    """Async iterable of completion chunks with a close() hook."""

    def __init__(self, deltas, fail_at=None):
        self.deltas = deltas
        self.fail_at = fail_at
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for position, delta in enumerate(self.deltas):
            if self.fail_at is not None and position == self.fail_at:
                raise openai.OpenAIError("connection reset")
            if delta is None:
                yield SimpleNamespace(choices=[])
            else:
                yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=delta))])

    async def close(self):
        self.closed = True


class TestConstruction:

    def test_missing_api_key_raises(self):
        with pytest.raises(ConfigurationError):
            OpenAILLMService(api_key=None)


class TestChat:
    """Buffered completion."""

    async def test_returns_message_content_and_forwards_config(self):
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hello!"))])
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        service = OpenAILLMService(client=client)

        answer = await service.chat(MESSAGES, LLMConfig(model="m-1", temperature=0.5, max_tokens=42))

        assert answer == "Hello!"
        client.chat.completions.create.assert_awaited_once_with(
            model="m-1", messages=MESSAGES, temperature=0.5, max_tokens=42
        )

    async def test_provider_error_is_wrapped(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("rate limited"))
        with pytest.raises(LLMError):
            await OpenAILLMService(client=client).chat(MESSAGES, LLMConfig())

    async def test_no_choices_raises(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with pytest.raises(LLMError):
            await OpenAILLMService(client=client).chat(MESSAGES, LLMConfig())


class TestStreamChat:
    """Streamed completion."""

    async def test_yields_non_empty_deltas_and_closes(self):
        stream = FakeCompletionStream(["Hel", None, "", "lo", "!"])
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream)

        tokens = [t async for t in OpenAILLMService(client=client).stream_chat(MESSAGES, LLMConfig())]

        assert tokens == ["Hel", "lo", "!"]
        assert stream.closed
        assert client.chat.completions.create.call_args.kwargs["stream"] is True

    async def test_early_close_closes_upstream(self):
        stream = FakeCompletionStream(["a", "b", "c"])
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream)

        tokens = OpenAILLMService(client=client).stream_chat(MESSAGES, LLMConfig())
        assert await tokens.__anext__() == "a"
        await tokens.aclose()

        assert stream.closed

    async def test_interruption_is_wrapped_and_closes_upstream(self):
        stream = FakeCompletionStream(["a", "b", "c"], fail_at=1)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream)

        received = []
        with pytest.raises(LLMError):
            async for token in OpenAILLMService(client=client).stream_chat(MESSAGES, LLMConfig()):
                received.append(token)

        assert received == ["a"]
        assert stream.closed

    async def test_open_failure_is_wrapped(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("bad key"))
        with pytest.raises(LLMError):
            async for _ in OpenAILLMService(client=client).stream_chat(MESSAGES, LLMConfig()):
                pass
