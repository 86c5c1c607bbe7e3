"""Tests for AI backends (mocked SDK calls)."""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from receiptpal.ai import GenerationSettings, ImagePart, create_backend
from receiptpal.ai.claude import ClaudeBackend
from receiptpal.ai.gemini import GeminiBackend
from receiptpal.config import load_config
from receiptpal.errors import (
    RATE_LIMIT_MESSAGE,
    AIConfigurationError,
    AIServiceError,
    RateLimitError,
)

SETTINGS = GenerationSettings(temperature=0.2, top_k=32, top_p=0.95, max_output_tokens=4096)


class _ApiError(Exception):
    def __init__(self, message, code=None, status_code=None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class _NoText:
    @property
    def text(self):
        raise ValueError("response has no text parts")


def _mock_genai(response=None, error=None):
    model = MagicMock()
    if error is not None:
        model.generate_content_async = AsyncMock(side_effect=error)
    else:
        model.generate_content_async = AsyncMock(return_value=response)
    genai = MagicMock()
    genai.GenerativeModel.return_value = model
    google = MagicMock()
    google.generativeai = genai
    return {"google": google, "google.generativeai": genai}, genai, model


class TestCreateBackend:
    def test_create_gemini_backend(self):
        config = load_config()
        backend = create_backend(config)
        assert isinstance(backend, GeminiBackend)

    def test_create_claude_backend(self):
        config = load_config()
        config.ai.backend = "claude"
        backend = create_backend(config)
        assert isinstance(backend, ClaudeBackend)

    def test_create_unknown_backend(self):
        config = load_config()
        config.ai.backend = "unknown"
        with pytest.raises(ValueError, match="Unknown AI backend"):
            create_backend(config)


class TestGeminiBackend:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        backend = GeminiBackend(api_key="")
        with pytest.raises(AIConfigurationError, match="GEMINI_API_KEY"):
            await backend.generate("hello", SETTINGS)

    @pytest.mark.asyncio
    async def test_generate_mocked(self):
        response = MagicMock()
        response.text = '{"ok": true}'
        modules, genai, model = _mock_genai(response=response)

        with patch.dict(sys.modules, modules):
            backend = GeminiBackend(api_key="test-key", model="gemini-test")
            text = await backend.generate(
                "Read this", SETTINGS, images=[ImagePart(data=b"img", mime_type="image/png")]
            )

        assert text == '{"ok": true}'
        genai.configure.assert_called_once_with(api_key="test-key")
        genai.GenerativeModel.assert_called_once_with("gemini-test")
        parts = model.generate_content_async.call_args.args[0]
        assert parts[0] == "Read this"
        assert parts[1] == {"mime_type": "image/png", "data": b"img"}
        config = model.generate_content_async.call_args.kwargs["generation_config"]
        assert config == {
            "temperature": 0.2,
            "top_k": 32,
            "top_p": 0.95,
            "max_output_tokens": 4096,
        }

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        modules, _, _ = _mock_genai(error=_ApiError("quota exceeded", code=429))

        with patch.dict(sys.modules, modules):
            backend = GeminiBackend(api_key="test-key")
            with pytest.raises(RateLimitError) as exc_info:
                await backend.generate("hello", SETTINGS)

        assert str(exc_info.value) == RATE_LIMIT_MESSAGE

    @pytest.mark.asyncio
    async def test_other_api_error(self):
        modules, _, _ = _mock_genai(error=_ApiError("bad request", code=400))

        with patch.dict(sys.modules, modules):
            backend = GeminiBackend(api_key="test-key")
            with pytest.raises(AIServiceError, match="Gemini API error") as exc_info:
                await backend.generate("hello", SETTINGS)

        assert not isinstance(exc_info.value, RateLimitError)

    @pytest.mark.asyncio
    async def test_empty_response(self):
        modules, _, _ = _mock_genai(response=_NoText())

        with patch.dict(sys.modules, modules):
            backend = GeminiBackend(api_key="test-key")
            with pytest.raises(AIServiceError, match="No response"):
                await backend.generate("hello", SETTINGS)


class TestClaudeBackend:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        backend = ClaudeBackend(api_key="")
        with pytest.raises(AIConfigurationError, match="ANTHROPIC_API_KEY"):
            await backend.generate("hello", SETTINGS)

    @pytest.mark.asyncio
    async def test_generate_mocked(self):
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text="dairy")]

        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            backend = ClaudeBackend(api_key="test-key", model="claude-test")
            text = await backend.generate(
                "Categorize", SETTINGS, images=[ImagePart(data=b"img", mime_type="image/jpeg")]
            )

        assert text == "dairy"
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 4096
        content = kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/jpeg"
        assert content[-1] == {"type": "text", "text": "Categorize"}

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(
            side_effect=_ApiError("too many requests", status_code=429)
        )
        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            backend = ClaudeBackend(api_key="test-key")
            with pytest.raises(RateLimitError):
                await backend.generate("hello", SETTINGS)
