"""Reimagine - FastAPI Application.

This module defines the FastAPI application factory, all REST API routes, and
the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Records** live in a :class:`~reimagine.core.store.GenerationStore` held on
  ``app.state``.  Nothing is persisted; a restart starts from an empty list.
- **Generations** are handed to a
  :class:`~reimagine.core.orchestrator.GenerationOrchestrator`, whose
  dispatcher runs for the lifetime of the application.  ``POST`` requests
  return the ``pending`` record immediately; clients poll
  ``GET /api/generations/{id}`` until the status is terminal.
- **Uploads** are converted to ``data:`` URLs and returned to the client,
  which includes them in its generation request.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/health``               Version, model and record count
GET       ``/api/generations``          Most recent generations, newest first
GET       ``/api/generations/{id}``     Single generation
POST      ``/api/upload``               Encode up to 5 images as data URLs
POST      ``/api/generations``          Submit a prompt + images generation
POST      ``/api/tryon``                Submit a person + clothing try-on
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    reimagine

Direct invocation::

    python -m reimagine.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Body, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reimagine import __version__
from reimagine.api.models import UploadResponse
from reimagine.api.uploads import encode_uploads
from reimagine.api.validation import (
    request_field_errors,
    validate_generation_request,
    validate_tryon_request,
)
from reimagine.core.config import ReimagineConfig, config
from reimagine.core.errors import ValidationError
from reimagine.core.generator import ImageGenerator, ReplicateGenerator
from reimagine.core.orchestrator import GenerationOrchestrator
from reimagine.core.records import GenerationRecord
from reimagine.core.store import GenerationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Request-scoped accessors for objects created in the lifespan.
# ---------------------------------------------------------------------------


def _settings(request: Request) -> ReimagineConfig:
    return request.app.state.settings


def _store(request: Request) -> GenerationStore:
    return request.app.state.store


def _orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def _bad_request(error: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"message": error.message, "errors": error.errors},
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed query, path and form parameters as a 400.

    Gives parameter errors (for example ``?limit=0``) the same
    ``{"message", "errors"}`` body as rejected JSON payloads.
    """
    error = ValidationError(request_field_errors(exc))
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, ", ".join(error.fields))
    return JSONResponse(status_code=400, content={"detail": {"message": error.message, "errors": error.errors}})


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@router.get("/health")
async def health(request: Request) -> dict:
    """Return service metadata.

    Returns:
        Dictionary with ``version``, ``model``, ``generations`` (records in
        memory), and ``in_flight`` (generations currently running).
    """
    orchestrator = _orchestrator(request)
    return {
        "version": __version__,
        "model": _settings(request).replicate_model,
        "generations": len(_store(request)),
        "in_flight": orchestrator.in_flight + orchestrator.queued,
    }


@router.get("/generations")
async def list_generations(
    request: Request,
    limit: int | None = Query(default=None, ge=1, le=100),
) -> list[GenerationRecord]:
    """Return the most recent generations, newest first.

    Args:
        limit: Maximum number of records.  Defaults to
            ``config.recent_limit`` (10).
    """
    if limit is None:
        limit = _settings(request).recent_limit
    return _store(request).list_recent(limit)


@router.get("/generations/{generation_id}")
async def get_generation(request: Request, generation_id: str) -> GenerationRecord:
    """Return a single generation.

    Raises:
        HTTPException: 404 if no generation has this id.
    """
    record = _store(request).get(generation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return record


@router.post("/upload")
async def upload_images(
    request: Request,
    images: list[UploadFile] | None = File(default=None),
) -> UploadResponse:
    """Convert uploaded images to data URLs.

    Raises:
        HTTPException: 400 when no files are sent, more than
            ``max_upload_files`` are sent, or a file is too large or not an
            image.
    """
    settings = _settings(request)
    try:
        urls = await encode_uploads(
            images,
            max_files=settings.max_upload_files,
            max_bytes=settings.max_upload_bytes,
        )
    except ValidationError as e:
        raise _bad_request(e) from e
    return UploadResponse(urls=urls)


@router.post("/generations")
async def create_generation(request: Request, payload: Any = Body(default=None)) -> GenerationRecord:
    """Submit a prompt + reference images generation.

    The record is returned in the ``pending`` state before the model is
    called; poll ``GET /api/generations/{id}`` for the outcome.

    Raises:
        HTTPException: 400 with per-field errors when validation fails.
    """
    try:
        req = validate_generation_request(payload)
    except ValidationError as e:
        raise _bad_request(e) from e
    return _orchestrator(request).submit(req.prompt, req.image_urls)


@router.post("/tryon")
async def create_tryon(request: Request, payload: Any = Body(default=None)) -> GenerationRecord:
    """Submit a virtual try-on: the clothing image dressed on the person image.

    Uses the configured ``tryon_prompt``; otherwise identical to
    ``POST /api/generations``.

    Raises:
        HTTPException: 400 with per-field errors when validation fails.
    """
    try:
        req = validate_tryon_request(payload)
    except ValidationError as e:
        raise _bad_request(e) from e
    return _orchestrator(request).submit(_settings(request).tryon_prompt, req.image_urls)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: ReimagineConfig | None = None,
    generator: ImageGenerator | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration.  Defaults to the global ``config``.
        generator: External generation capability.  Defaults to a
            :class:`ReplicateGenerator` built at startup.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        app.state.settings = settings
        app.state.store = GenerationStore()
        app.state.orchestrator = GenerationOrchestrator(
            app.state.store,
            generator or ReplicateGenerator(settings),
            timeout=settings.effective_timeout,
        )
        app.state.orchestrator.start()
        logger.info("Reimagine %s ready (model %s)", __version__, settings.replicate_model)

        yield

        # --- Shutdown ------------------------------------------------------
        await app.state.orchestrator.stop()

    app = FastAPI(
        title="Reimagine",
        description="Prompt-driven image transformation and virtual try-on.",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~reimagine.core.config.config`
    (``REIMAGINE_SERVER_HOST``, ``REIMAGINE_SERVER_PORT``,
    ``REIMAGINE_LOG_LEVEL``).  Defaults to ``0.0.0.0:5000``.

    This function is registered as the ``reimagine`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "reimagine.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
