"""Shared pytest fixtures for Reimagine tests."""

from __future__ import annotations

import asyncio
import io
import struct
import zlib
from collections.abc import Callable, Generator, Sequence
from typing import Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from reimagine.api.main import create_app
from reimagine.core.config import ReimagineConfig
from reimagine.core.store import GenerationStore

RESULT_URL = "https://cdn/out.png"


class StaticGenerator:
    """Generator that returns a fixed output and records every call."""

    def __init__(self, output: Any = RESULT_URL) -> None:
        self.output = output
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        self.calls.append((prompt, tuple(image_urls)))
        return self.output


class FailingGenerator:
    """Generator that raises the given exception."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        raise self.error


class SlowGenerator:
    """Generator that sleeps before returning, for timeout tests."""

    def __init__(self, delay: float, output: Any = RESULT_URL) -> None:
        self.delay = delay
        self.output = output

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        await asyncio.sleep(self.delay)
        return self.output


class GatedGenerator:
    """Generator that blocks until ``gate`` is set.

    The event must be created inside the event loop that runs the test.
    """

    def __init__(self, gate: asyncio.Event, output: Any = RESULT_URL) -> None:
        self.gate = gate
        self.output = output

    async def generate(self, prompt: str, image_urls: Sequence[str]) -> Any:
        await self.gate.wait()
        return self.output


@pytest.fixture
def test_config() -> ReimagineConfig:
    """Create a configuration isolated from the environment and ``.env``.

    Returns:
        ReimagineConfig instance for testing
    """
    return ReimagineConfig(
        _env_file=None,
        replicate_api_token="test-token",
        replicate_model="test-owner/test-model",
        generation_timeout_seconds=None,
        max_upload_bytes=256 * 1024,
    )


@pytest.fixture
def store() -> GenerationStore:
    """Create an empty record store."""
    return GenerationStore()


@pytest.fixture
def static_generator() -> StaticGenerator:
    return StaticGenerator()


@pytest.fixture
def client_factory(test_config: ReimagineConfig) -> Generator[Callable[..., TestClient], None, None]:
    """Build TestClients around a given generator.

    The application lifespan (and with it the generation dispatcher) runs
    for as long as the client is open; all clients are closed on teardown.

    Yields:
        Callable taking a generator and optional config overrides
    """
    clients: list[TestClient] = []

    def _make(generator: Any, **overrides: Any) -> TestClient:
        settings = test_config.model_copy(update=overrides) if overrides else test_config
        client = TestClient(create_app(settings=settings, generator=generator))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def test_client(client_factory, static_generator: StaticGenerator) -> TestClient:
    """TestClient whose generator always succeeds with ``RESULT_URL``."""
    return client_factory(static_generator)


def make_png(size: tuple[int, int] = (32, 32), color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    """Encode a solid-colour PNG in memory."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (48, 32), color=(10, 120, 240)).save(buffer, format="JPEG")
    return buffer.getvalue()


def make_oversized_png(width: int = 20000, height: int = 20000) -> bytes:
    """Build a tiny PNG whose header declares *width* x *height* pixels.

    Only the header is meaningful; Pillow rejects the dimensions before it
    reads any pixel data.
    """

    def chunk(tag: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(tag + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(b"\x00"))
        + chunk(b"IEND", b"")
    )


@pytest.fixture
def oversized_png() -> bytes:
    return make_oversized_png()
