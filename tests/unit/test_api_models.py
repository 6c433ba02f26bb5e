"""Tests for reimagine.api.models - Pydantic request/response models.

Tests cover:
- Aliases accepted by the request models.
- Prompt trimming and URL checks on GenerationRequest.
- Image ordering on TryOnRequest.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from reimagine.api.models import GenerationRequest, TryOnRequest, UploadResponse


class TestGenerationRequest:
    def test_camel_and_snake_case(self):
        camel = GenerationRequest(prompt="p", imageUrls=["https://x/a.png"])
        snake = GenerationRequest(prompt="p", image_urls=["https://x/a.png"])
        assert camel == snake

    def test_defaults_are_validated(self):
        """An empty request fails on both fields rather than passing through."""
        with pytest.raises(ValidationError) as exc_info:
            GenerationRequest()
        assert [error["type"] for error in exc_info.value.errors()] == [
            "prompt_required",
            "images_required",
        ]

    def test_url_error_type(self):
        with pytest.raises(ValidationError) as exc_info:
            GenerationRequest(prompt="p", image_urls=["not a url"])
        assert exc_info.value.errors()[0]["type"] == "url"

    def test_dump_by_alias(self):
        req = GenerationRequest(prompt=" p ", image_urls=["https://x/a.png"])
        assert req.model_dump(by_alias=True) == {"prompt": "p", "imageUrls": ["https://x/a.png"]}


class TestTryOnRequest:
    def test_person_first(self):
        req = TryOnRequest(personImageUrl="https://x/p.jpg", clothingImageUrl="https://x/c.jpg")
        assert req.image_urls == ["https://x/p.jpg", "https://x/c.jpg"]

    def test_both_required(self):
        with pytest.raises(ValidationError):
            TryOnRequest(personImageUrl="https://x/p.jpg")


def test_upload_response():
    assert UploadResponse(urls=["data:image/png;base64,AA"]).model_dump() == {
        "urls": ["data:image/png;base64,AA"]
    }
