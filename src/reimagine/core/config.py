"""Configuration management for Reimagine.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the REIMAGINE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (REIMAGINE_* prefix)
2. .env file in the project root
3. Default values defined in ReimagineConfig

The Replicate API token is additionally read from the conventional
``REPLICATE_API_TOKEN`` and ``REPLICATE_API_KEY`` variables, so an existing
Replicate setup works without renaming anything.

Example .env file:
    REPLICATE_API_TOKEN=r8_xxx
    REIMAGINE_REPLICATE_MODEL=google/nano-banana
    REIMAGINE_GENERATION_TIMEOUT_SECONDS=300
    REIMAGINE_SERVER_PORT=5000

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.

Usage Example
-------------
    from reimagine.core.config import config

    print(config.replicate_model)
    print(config.recent_limit)
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TRYON_PROMPT = (
    "Realistically dress the person in the first image with the clothing from "
    "the second image. The fit must look natural. Do not change the person's "
    "face or the background."
)


class ReimagineConfig(BaseSettings):
    """Main configuration for Reimagine.

    Attributes
    ----------
    External model:
        replicate_api_token : str | None
            Replicate API token.  ``None`` defers to the replicate client's own
            environment lookup.
        replicate_model : str
            Model reference passed to ``replicate.run``.
        generation_timeout_seconds : float | None
            Upper bound on a single external call.  ``None`` or ``0`` disables
            the timeout and waits indefinitely.

    Generations:
        recent_limit : int
            Default number of records returned by the recency listing.
        tryon_prompt : str
            Fixed instruction used by the virtual try-on endpoint.

    Uploads:
        max_upload_files : int
            Maximum number of files accepted by a single upload request.
        max_upload_bytes : int
            Maximum size of a single uploaded file.

    Server:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Port for uvicorn (1024-65535).
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root logging level configured by the CLI entry point.
        cors_origins : list[str]
            Origins allowed by the CORS middleware.

    Examples
    --------
        >>> custom_config = ReimagineConfig(
        ...     replicate_model="black-forest-labs/flux-kontext-pro",
        ...     generation_timeout_seconds=None,
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REIMAGINE_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # External model
    replicate_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "replicate_api_token",
            "REIMAGINE_REPLICATE_API_TOKEN",
            "REPLICATE_API_TOKEN",
            "REPLICATE_API_KEY",
        ),
        description="Replicate API token",
    )
    replicate_model: str = Field(
        default="google/nano-banana",
        description="Replicate model reference used for every generation",
    )
    generation_timeout_seconds: float | None = Field(
        default=300.0,
        ge=0,
        description="Timeout for one external call (None or 0 disables it)",
    )

    # Generations
    recent_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Default size of the recent generations listing",
    )
    tryon_prompt: str = Field(
        default=DEFAULT_TRYON_PROMPT,
        min_length=1,
        description="Instruction sent with virtual try-on requests",
    )

    # Uploads
    max_upload_files: int = Field(default=5, ge=1, le=20)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=5000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for the CLI entry point",
    )
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def effective_timeout(self) -> float | None:
        """Timeout to apply to the external call, or ``None`` for no timeout."""
        if not self.generation_timeout_seconds:
            return None
        return self.generation_timeout_seconds


# Global configuration instance
config = ReimagineConfig()
