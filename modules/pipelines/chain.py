"""Extend: turn the latest generated image into the next input image."""

from __future__ import annotations

from dataclasses import dataclass

from modules.pipelines.request_builder import AspectRatio, SourceImage
from modules.utils.image_utils import parse_image_reference

CONTINUATION_PROMPT = (
    "Using this image as the current frame, generate the next natural progression "
    "of the scene, as if time has moved forward a few moments. Keep the same "
    "setting, characters, lighting and visual style. Do not duplicate, repeat, "
    "mirror or overlap any part of the existing image; show a new moment rather "
    "than a copy of the current one."
)


@dataclass(slots=True, frozen=True)
class ChainStep:
    """Inputs for the single generation that follows an extend."""

    source_image: SourceImage
    prompt: str
    negative_prompt: str
    aspect_ratio: AspectRatio


class ChainController:
    """Build one continuation step from a generated image.

    Each call produces exactly one step; running it is up to the caller.
    """

    continuation_prompt = CONTINUATION_PROMPT

    def extend(
        self,
        generated_image: str,
        original_name: str,
        aspect_ratio: AspectRatio | str,
    ) -> ChainStep:
        """Raise FormatError when ``generated_image`` is not a valid data URL."""
        media_type, encoded = parse_image_reference(generated_image)
        source = SourceImage(
            encoded_bytes=encoded,
            media_type=media_type,
            display_name=f"extended-{original_name or 'image.png'}",
            preview_reference=generated_image,
        )
        return ChainStep(
            source_image=source,
            prompt=self.continuation_prompt,
            negative_prompt="",
            aspect_ratio=AspectRatio.parse(aspect_ratio),
        )
