"""Generation request assembly and outbound instruction composition."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from modules.errors import ValidationError

BASELINE_NEGATIVE_PROMPT = (
    "blurry, ugly, distorted, text, watermark, low quality, bad anatomy"
)


class GenerationMode(str, Enum):
    """Whether a request creates an image from text or edits a source image."""

    CREATE = "create"
    EDIT = "edit"


class AspectRatio(str, Enum):
    """Supported output aspect ratios."""

    SQUARE = "1:1"
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"

    @classmethod
    def parse(cls, value: "AspectRatio | str") -> "AspectRatio":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Unsupported aspect ratio: {value}") from exc


DEFAULT_ASPECT_RATIO = AspectRatio.SQUARE


@dataclass(slots=True, frozen=True)
class SourceImage:
    """Input image for edit mode."""

    encoded_bytes: str
    media_type: str
    display_name: str
    preview_reference: str


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Everything the image service needs for one generation."""

    mode: GenerationMode
    prompt_text: str
    negative_prompt_text: str
    aspect_ratio: AspectRatio
    source_image: Optional[SourceImage] = None

    @property
    def instruction(self) -> str:
        return compose_instruction(
            self.prompt_text, self.negative_prompt_text, self.aspect_ratio
        )


@dataclass(slots=True, frozen=True)
class GenerationResult:
    """Image payload returned by the image service."""

    encoded_bytes: str
    media_type: str


def merge_negative_prompt(negative_prompt: str) -> str:
    """Prefix the baseline negative list with the user's negative prompt.

    The user part is kept even when empty, so the service always sees
    ``", blurry, ..."`` after the label.
    """
    return f"{(negative_prompt or '').strip()}, {BASELINE_NEGATIVE_PROMPT}"


def compose_instruction(
    prompt: str, negative_prompt: str, aspect_ratio: AspectRatio | str
) -> str:
    """Build the text instruction sent to the image model."""
    ratio = AspectRatio.parse(aspect_ratio).value
    return (
        f"{prompt.strip()}. "
        f"Generate the image in a {ratio} aspect ratio. "
        f"Negative prompt: {merge_negative_prompt(negative_prompt)}. "
        "Ensure the resulting image is high quality and photorealistic."
    )


class GenerationRequestBuilder:
    """Turn workflow inputs into a GenerationRequest."""

    def build(
        self,
        prompt: str,
        negative_prompt: str = "",
        aspect_ratio: AspectRatio | str = DEFAULT_ASPECT_RATIO,
        source_image: Optional[SourceImage] = None,
    ) -> GenerationRequest:
        """Return a request, or raise ValidationError for an empty prompt."""
        prompt_text = (prompt or "").strip()
        if not prompt_text:
            raise ValidationError("Please enter a prompt.")

        mode = GenerationMode.EDIT if source_image is not None else GenerationMode.CREATE
        return GenerationRequest(
            mode=mode,
            prompt_text=prompt_text,
            negative_prompt_text=(negative_prompt or "").strip(),
            aspect_ratio=AspectRatio.parse(aspect_ratio),
            source_image=source_image,
        )
