"""Request validation for the Reimagine API.

Route handlers hand raw JSON bodies to the functions in this module, which
return a validated model or raise
:class:`~reimagine.core.errors.ValidationError` listing every failed
constraint, one entry per field::

    [
        {"field": "prompt", "message": "Prompt is required"},
        {"field": "imageUrls", "message": "At least one image is required"},
    ]

Validation has no side effects; a rejected request never reaches the store.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from reimagine.api.models import GenerationRequest, TryOnRequest
from reimagine.core.errors import ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _field_name(loc: tuple) -> str:
    """Render a pydantic error location as a dotted camelCase field path."""
    if not loc:
        return "body"
    head, *rest = loc
    parts = [to_camel(head) if isinstance(head, str) and "_" in head else str(head)]
    parts.extend(str(part) for part in rest)
    return ".".join(parts)


def field_errors(error: PydanticValidationError) -> list[dict[str, str]]:
    """Convert a pydantic error into ``{"field", "message"}`` entries."""
    return [
        {"field": _field_name(tuple(item["loc"])), "message": item["msg"]}
        for item in error.errors(include_url=False)
    ]


def request_field_errors(error: RequestValidationError) -> list[dict[str, str]]:
    """Convert FastAPI parameter errors into ``{"field", "message"}`` entries.

    FastAPI prefixes each location with its source (``query``, ``path``,
    ``body``...); the prefix is dropped so ``?limit=0`` reports ``limit``.
    """
    return [
        {"field": _field_name(tuple(item["loc"])[1:]), "message": item["msg"]}
        for item in error.errors()
    ]


def validate_payload(model: type[ModelT], payload: Any) -> ModelT:
    """Validate *payload* against *model*.

    Args:
        model: Request model class.
        payload: Decoded JSON body.  ``None`` is treated as an empty object.

    Returns:
        The validated model instance.

    Raises:
        ValidationError: With one entry per failed constraint.
    """
    if payload is None:
        payload = {}
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = field_errors(e)
        logger.warning("Rejected %s: %s", model.__name__, ", ".join(err["field"] for err in errors))
        raise ValidationError(errors) from e


def validate_generation_request(payload: Any) -> GenerationRequest:
    """Validate a ``POST /api/generations`` body."""
    return validate_payload(GenerationRequest, payload)


def validate_tryon_request(payload: Any) -> TryOnRequest:
    """Validate a ``POST /api/tryon`` body."""
    return validate_payload(TryOnRequest, payload)
