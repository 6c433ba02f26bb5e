"""Pydantic request and response models for the Reimagine API.

These models define the JSON schema for the API endpoints.  Request models
accept camelCase keys (the front-end's shape) as well as snake_case field
names.

Models
------
GenerationRequest
    Payload for ``POST /api/generations`` - a prompt plus one or more image
    references.
TryOnRequest
    Payload for ``POST /api/tryon`` - a person image and a clothing image;
    the prompt is fixed by configuration.
UploadResponse
    Response of ``POST /api/upload`` - storable references for the uploaded
    files.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

_URL_ADAPTER = TypeAdapter(AnyUrl)


def _check_url(value: str) -> str:
    """Accept *value* only if it parses as an absolute URL (``data:`` included)."""
    try:
        _URL_ADAPTER.validate_python(value)
    except PydanticValidationError:
        raise PydanticCustomError("url", "Invalid url") from None
    return value


ImageReference = Annotated[str, AfterValidator(_check_url)]


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationRequest(_RequestModel):
    """Request body for the ``POST /api/generations`` endpoint.

    Attributes:
        prompt: Instruction for the model.  Surrounding whitespace is removed;
            an empty result is rejected.
        image_urls: Reference images (``imageUrls`` on the wire).  At least
            one is required and each must be a well-formed URL.
    """

    prompt: str = Field(
        default="",
        validate_default=True,
        description="Text describing the desired transformation.",
    )
    image_urls: list[ImageReference] = Field(
        default_factory=list,
        validate_default=True,
        description="Reference images as URLs or data URLs.",
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise PydanticCustomError("prompt_required", "Prompt is required")
        return value

    @field_validator("image_urls")
    @classmethod
    def _at_least_one_image(cls, value: list[str]) -> list[str]:
        if not value:
            raise PydanticCustomError("images_required", "At least one image is required")
        return value


class TryOnRequest(_RequestModel):
    """Request body for the ``POST /api/tryon`` endpoint.

    The person image is sent first and the clothing image second, matching
    the order the try-on prompt refers to.

    Attributes:
        person_image_url: Photo of the person (``personImageUrl``).
        clothing_image_url: Photo of the garment (``clothingImageUrl``).
    """

    person_image_url: ImageReference = Field(..., description="Photo of the person.")
    clothing_image_url: ImageReference = Field(..., description="Photo of the clothing item.")

    @property
    def image_urls(self) -> list[str]:
        return [self.person_image_url, self.clothing_image_url]


class UploadResponse(BaseModel):
    """Response body of the ``POST /api/upload`` endpoint.

    Attributes:
        urls: One ``data:`` URL per uploaded file, in upload order.
    """

    urls: list[str]
