"""AI backend base class, request types, and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import AppConfig


@dataclass(frozen=True)
class GenerationSettings:
    temperature: float
    top_k: int
    top_p: float
    max_output_tokens: int


@dataclass
class ImagePart:
    data: bytes
    mime_type: str = "image/jpeg"


class AIBackend(ABC):
    """Abstract base for a hosted multimodal text generation service."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        settings: GenerationSettings,
        images: list[ImagePart] | None = None,
    ) -> str:
        """Send one prompt (plus optional images) and return the text answer.

        Raises:
            AIConfigurationError: If no API key is configured.
            RateLimitError: If the service answered HTTP 429.
            AIServiceError: For any other upstream failure or empty answer.
        """
        ...


def create_backend(config: AppConfig) -> AIBackend:
    """Create an AI backend based on configuration."""
    backend_name = config.ai.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiBackend

            return GeminiBackend(
                api_key=config.ai.gemini.api_key,
                model=config.ai.gemini.model,
            )
        case "claude":
            from .claude import ClaudeBackend

            return ClaudeBackend(
                api_key=config.ai.claude.api_key,
                model=config.ai.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown AI backend: {backend_name!r} "
                f"(choose gemini or claude)"
            )
