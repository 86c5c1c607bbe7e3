"""Gemini API backend."""

from __future__ import annotations

import logging

from ..errors import AIConfigurationError, AIServiceError, RateLimitError
from . import AIBackend, GenerationSettings, ImagePart

logger = logging.getLogger(__name__)


def _status_code(exc: Exception) -> int | None:
    code = getattr(exc, "code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


class GeminiBackend(AIBackend):
    """Generate text with Google Gemini (text and vision)."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
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
                "GEMINI_API_KEY not configured. "
                "Set it in the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise AIConfigurationError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        parts: list = [prompt]
        for image in images or []:
            parts.append({"mime_type": image.mime_type, "data": image.data})

        try:
            response = await model.generate_content_async(
                parts,
                generation_config={
                    "temperature": settings.temperature,
                    "top_k": settings.top_k,
                    "top_p": settings.top_p,
                    "max_output_tokens": settings.max_output_tokens,
                },
            )
        except Exception as e:
            if _status_code(e) == 429:
                raise RateLimitError() from e
            logger.warning("Gemini request failed: %s", e)
            raise AIServiceError(f"Gemini API error: {e}") from e

        # .text raises ValueError when the answer has no text part
        try:
            text = response.text
        except ValueError:
            text = ""
        if not text:
            raise AIServiceError("No response from Gemini API")
        return text
