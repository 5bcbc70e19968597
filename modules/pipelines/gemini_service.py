"""Remote image generation through the Gemini API."""

from __future__ import annotations

import base64
import logging
from typing import Any, List, Optional, Protocol

from google import genai
from google.genai import types

from config.settings import AppConfig
from modules.errors import ServiceError
from modules.pipelines.request_builder import (
    AspectRatio,
    GenerationResult,
    SourceImage,
    compose_instruction,
)

logger = logging.getLogger(__name__)


class GenerationService(Protocol):
    """Contract of the remote image model."""

    async def create(
        self, prompt_text: str, negative_prompt_text: str, aspect_ratio: AspectRatio
    ) -> GenerationResult:
        ...

    async def edit(
        self,
        source_image: SourceImage,
        prompt_text: str,
        negative_prompt_text: str,
        aspect_ratio: AspectRatio,
    ) -> GenerationResult:
        ...


class GeminiImageService:
    """Facade around ``client.aio.models.generate_content`` for image output."""

    def __init__(self, config: AppConfig, client: Optional[Any] = None) -> None:
        self.config = config
        self._client = client

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.config.api_key:
            raise ServiceError("API_KEY environment variable not set.")
        self._client = genai.Client(api_key=self.config.api_key)
        return self._client

    async def create(
        self, prompt_text: str, negative_prompt_text: str, aspect_ratio: AspectRatio
    ) -> GenerationResult:
        """Generate an image from text alone."""
        instruction = compose_instruction(prompt_text, negative_prompt_text, aspect_ratio)
        return await self._generate([types.Part.from_text(text=instruction)])

    async def edit(
        self,
        source_image: SourceImage,
        prompt_text: str,
        negative_prompt_text: str,
        aspect_ratio: AspectRatio,
    ) -> GenerationResult:
        """Generate an image conditioned on ``source_image``."""
        try:
            image_bytes = base64.b64decode(source_image.encoded_bytes)
        except ValueError as exc:
            raise ServiceError(f"Failed to generate image: invalid source image data ({exc})") from exc

        instruction = compose_instruction(prompt_text, negative_prompt_text, aspect_ratio)
        parts = [
            types.Part.from_bytes(data=image_bytes, mime_type=source_image.media_type),
            types.Part.from_text(text=instruction),
        ]
        return await self._generate(parts)

    async def _generate(self, parts: List[types.Part]) -> GenerationResult:
        client = self._ensure_client()
        logger.info("Requesting image from %s (%d parts)", self.config.model_id, len(parts))
        try:
            response = await client.aio.models.generate_content(
                model=self.config.model_id,
                contents=[types.Content(role="user", parts=parts)],
                config=types.GenerateContentConfig(response_modalities=["IMAGE"]),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error calling Gemini API")
            raise ServiceError(f"Failed to generate image: {exc}") from exc

        result = _extract_image(response)
        if result is None:
            logger.error("Gemini response contained no image part")
            raise ServiceError("No image data found in the Gemini API response.")
        return result


def _extract_image(response: Any) -> Optional[GenerationResult]:
    """Return the first inline image of the first candidate, base64-encoded."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if inline is None or not inline.data:
            continue
        data = inline.data
        if isinstance(data, (bytes, bytearray)):
            encoded = base64.b64encode(data).decode("ascii")
        else:
            encoded = str(data)
        return GenerationResult(encoded_bytes=encoded, media_type=inline.mime_type or "image/png")
    return None
