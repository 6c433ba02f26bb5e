"""External image generation capability.

The orchestrator depends only on the :class:`ImageGenerator` protocol: an
async ``generate(prompt, image_urls)`` returning whatever the model produced.
:class:`ReplicateGenerator` is the production implementation, calling a
hosted Replicate model (``google/nano-banana`` by default) with the prompt
and the reference images as ``image_input``.

Normalising the returned value is the orchestrator's job (see
:mod:`reimagine.core.outputs`); the generator hands back the raw output.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import replicate
from replicate.exceptions import ReplicateException

from reimagine.core.config import ReimagineConfig
from reimagine.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageGenerator(Protocol):
    """Anything that can turn a prompt and reference images into an output."""

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        ...


class ReplicateGenerator:
    """Run a Replicate model for each generation request.

    Args:
        config: Application configuration.  ``replicate_model`` selects the
            model, ``replicate_api_token`` authenticates (falls back to the
            replicate client's own environment lookup when ``None``).
        client: Pre-built :class:`replicate.Client`, mainly for tests.
    """

    def __init__(self, config: ReimagineConfig, client: replicate.Client | None = None) -> None:
        self.model = config.replicate_model
        self._client = client or replicate.Client(api_token=config.replicate_api_token)

    def build_input(self, prompt: str, image_urls: Sequence[str]) -> dict[str, Any]:
        return {"prompt": prompt, "image_input": list(image_urls)}

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        """Invoke the model and return its raw output.

        Raises:
            ExternalServiceError: If Replicate rejects the request or the
                prediction fails.
        """
        payload = self.build_input(prompt, image_urls)
        logger.info(
            "Starting Replicate generation with %s (%d reference image(s))",
            self.model,
            len(payload["image_input"]),
        )
        try:
            return await self._client.async_run(self.model, input=payload)
        except ReplicateException as e:
            raise ExternalServiceError(str(e) or type(e).__name__) from e
