"""ChainController and image reference helper tests."""

from __future__ import annotations

import base64

import pytest

from modules.errors import FormatError, ValidationError
from modules.pipelines.chain import CONTINUATION_PROMPT, ChainController
from modules.pipelines.request_builder import AspectRatio
from modules.utils.image_utils import (
    build_image_reference,
    decode_image_reference,
    load_source_image,
    parse_image_reference,
    slugify,
)


def test_extend_decomposes_generated_image():
    step = ChainController().extend("data:image/png;base64,AAAA", "cat.png", "16:9")

    assert step.source_image.media_type == "image/png"
    assert step.source_image.encoded_bytes == "AAAA"
    assert step.source_image.display_name == "extended-cat.png"
    assert step.source_image.preview_reference == "data:image/png;base64,AAAA"
    assert step.prompt == CONTINUATION_PROMPT
    assert step.negative_prompt == ""
    assert step.aspect_ratio is AspectRatio.LANDSCAPE


def test_continuation_prompt_forbids_duplication():
    assert "next natural progression of the scene" in CONTINUATION_PROMPT
    assert "Do not duplicate" in CONTINUATION_PROMPT


@pytest.mark.parametrize(
    "reference",
    [
        "",
        "data:image/png;base64AAAA",
        "image/png;base64,AAAA",
        "data:image/png,AAAA",
        "data:text/plain;base64,AAAA",
        "data:image/png;base64,",
    ],
)
def test_extend_rejects_malformed_reference(reference):
    with pytest.raises(FormatError):
        ChainController().extend(reference, "cat.png", "1:1")


def test_parse_uses_first_comma():
    media_type, payload = parse_image_reference("data:image/webp;base64,AB,CD")

    assert media_type == "image/webp"
    assert payload == "AB,CD"


def test_decode_reference_returns_bytes():
    encoded = base64.b64encode(b"\x89PNG").decode("ascii")
    media_type, data = decode_image_reference(build_image_reference("image/png", encoded))

    assert media_type == "image/png"
    assert data == b"\x89PNG"


def test_decode_rejects_invalid_base64():
    with pytest.raises(FormatError):
        decode_image_reference("data:image/png;base64,@@@")


def test_load_source_image(tmp_path):
    path = tmp_path / "photo.jpg"
    path.write_bytes(b"jpeg-bytes")

    image = load_source_image(path)

    assert image.media_type == "image/jpeg"
    assert image.display_name == "photo.jpg"
    assert base64.b64decode(image.encoded_bytes) == b"jpeg-bytes"
    assert image.preview_reference.startswith("data:image/jpeg;base64,")


def test_load_source_image_rejects_non_image(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hello", encoding="utf-8")

    with pytest.raises(ValidationError) as excinfo:
        load_source_image(path)
    assert excinfo.value.message == "Please select an image file."


@pytest.mark.parametrize(
    "text,expected",
    [
        ("A Red Fox!", "a-red-fox"),
        ("  ", "image"),
        ("雪山", "image"),
        ("x" * 80, "x" * 40),
    ],
)
def test_slugify(text, expected):
    assert slugify(text) == expected
