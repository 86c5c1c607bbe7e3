"""Claude API backend."""

from __future__ import annotations

import base64
import logging

from ..errors import AIConfigurationError, AIServiceError, RateLimitError
from . import AIBackend, GenerationSettings, ImagePart

logger = logging.getLogger(__name__)


class ClaudeBackend(AIBackend):
    """Generate text with Anthropic Claude (text and vision)."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def generate(
        self,
        prompt: str,
        settings: GenerationSettings,
        images: list[ImagePart] | None = None,
    ) -> str:
        if not self._api_key:
            raise AIConfigurationError(
                "ANTHROPIC_API_KEY not configured. "
                "Set it in the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise AIConfigurationError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content: list[dict] = []
        for image in images or []:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.mime_type,
                        "data": base64.standard_b64encode(image.data).decode(),
                    },
                }
            )
        content.append({"type": "text", "text": prompt})

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=settings.max_output_tokens,
                temperature=settings.temperature,
                top_k=settings.top_k,
                messages=[{"role": "user", "content": content}],
            )
        except Exception as e:
            if getattr(e, "status_code", None) == 429:
                raise RateLimitError() from e
            logger.warning("Claude request failed: %s", e)
            raise AIServiceError(f"Claude API error: {e}") from e

        if not response.content:
            raise AIServiceError("No response from Claude API")
        text = getattr(response.content[0], "text", "")
        if not text:
            raise AIServiceError("No response from Claude API")
        return text
