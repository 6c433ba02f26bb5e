"""HTTP client and status poller for the Reimagine API.

The poller is the client-side half of the generation lifecycle: after a
submission returns a ``pending`` record, :meth:`GenerationPoller.wait` reads
``GET /api/generations/{id}`` every ``interval`` seconds until the record is
``completed`` or ``failed``.

Reads have no side effects, so polling can be repeated or abandoned at any
time without affecting the generation itself.  A 404 on the very first read
is treated as a creation/read race and polled again; a 404 afterwards means
the record is really gone.

Usage
-----
::

    with GenerationPoller("http://localhost:5000") as poller:
        urls = poller.upload(["person.jpg", "shirt.jpg"])
        record = poller.submit_tryon(urls[0], urls[1])
        final = poller.wait(record["id"])
        if final["status"] == "completed":
            poller.download(final, "tryon-result.png")
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import time
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any
from urllib.parse import unquote_to_bytes

import httpx

from reimagine.core.errors import NotFoundError, PollTimeoutError, ValidationError

logger = logging.getLogger(__name__)

SINGLE_POLL_INTERVAL = 2.0
LIST_POLL_INTERVAL = 5.0
TERMINAL_STATUSES = frozenset({"completed", "failed"})


def is_terminal(record: dict[str, Any]) -> bool:
    return record.get("status") in TERMINAL_STATUSES


def decode_data_url(url: str) -> bytes:
    """Return the payload of a ``data:`` URL (base64 or percent-encoded)."""
    header, sep, payload = url.partition(",")
    if not header.startswith("data:") or not sep:
        raise ValueError("Malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError("Malformed data URL") from e
    return unquote_to_bytes(payload)


class GenerationPoller:
    """Submit generations and poll them until they finish.

    Args:
        base_url: Root URL of the Reimagine server.
        client: Pre-built :class:`httpx.Client` (for example a FastAPI
            ``TestClient``).  When given, ``base_url`` and ``timeout`` are
            ignored and the client is not closed by :meth:`close`.
        interval: Seconds between single-record polls.
        list_interval: Seconds between recent-list polls.
        timeout: HTTP timeout for each request.
        sleep: Function used to wait between polls.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        *,
        client: httpx.Client | None = None,
        interval: float = SINGLE_POLL_INTERVAL,
        list_interval: float = LIST_POLL_INTERVAL,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.interval = interval
        self.list_interval = list_interval
        self._sleep = sleep

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> GenerationPoller:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- Submission ---------------------------------------------------------

    def _post(self, path: str, **kwargs) -> Any:
        response = self._client.post(path, **kwargs)
        if response.status_code == 400:
            detail = response.json().get("detail", {})
            if isinstance(detail, dict):
                raise ValidationError(detail.get("errors", []), detail.get("message", "Invalid request data"))
            raise ValidationError([], str(detail))
        response.raise_for_status()
        return response.json()

    def upload(self, paths: Sequence[str | Path]) -> list[str]:
        """Upload image files and return their data URLs."""
        files = []
        for path in map(Path, paths):
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            files.append(("images", (path.name, path.read_bytes(), mime_type)))
        return self._post("/api/upload", files=files)["urls"]

    def submit(self, prompt: str, image_urls: Sequence[str]) -> dict[str, Any]:
        """Submit a generation and return the ``pending`` record.

        Raises:
            ValidationError: If the server rejects the request.
        """
        return self._post("/api/generations", json={"prompt": prompt, "imageUrls": list(image_urls)})

    def submit_tryon(self, person_image_url: str, clothing_image_url: str) -> dict[str, Any]:
        """Submit a virtual try-on and return the ``pending`` record."""
        return self._post(
            "/api/tryon",
            json={"personImageUrl": person_image_url, "clothingImageUrl": clothing_image_url},
        )

    # -- Reads --------------------------------------------------------------

    def fetch(self, record_id: str) -> dict[str, Any] | None:
        """Read one record.  Returns ``None`` if the server answers 404."""
        response = self._client.get(f"/api/generations/{record_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Read the most recent records, newest first."""
        params = {"limit": limit} if limit is not None else None
        response = self._client.get("/api/generations", params=params)
        response.raise_for_status()
        return response.json()

    # -- Results ------------------------------------------------------------

    def download(self, record_or_url: dict[str, Any] | str, path: str | Path) -> Path:
        """Save a generation result to disk.

        Args:
            record_or_url: A completed record (its ``resultUrl`` is used) or
                the result reference itself, either an ``http(s)://`` URL or
                a ``data:`` URL.
            path: Target file.  If it is an existing directory the file is
                named ``generated-<id>.png`` inside it.

        Returns:
            The path written.

        Raises:
            ValueError: If the record has no result or the reference is
                neither an HTTP nor a data URL.
            httpx.HTTPStatusError: If fetching an HTTP result fails.
        """
        if isinstance(record_or_url, dict):
            url = record_or_url.get("resultUrl")
            if not url:
                raise ValueError(f"Generation {record_or_url.get('id')} has no result to download")
            name = f"generated-{record_or_url.get('id', 'result')}.png"
        else:
            url = record_or_url
            name = "generated-result.png"

        target = Path(path)
        if target.is_dir():
            target = target / name

        if url.startswith("data:"):
            data = decode_data_url(url)
        elif url.startswith(("http://", "https://")):
            response = self._client.get(url)
            response.raise_for_status()
            data = response.content
        else:
            raise ValueError(f"Unsupported result reference: {url[:40]}")

        target.write_bytes(data)
        logger.info("Saved %d bytes to %s", len(data), target)
        return target

    # -- Polling ------------------------------------------------------------

    def wait(
        self,
        record_id: str,
        *,
        max_polls: int | None = None,
        on_update: Callable[[dict[str, Any]], None] | None = None,
    ) -> dict[str, Any]:
        """Poll a record until it reaches ``completed`` or ``failed``.

        Args:
            record_id: Identifier returned by :meth:`submit`.
            max_polls: Give up after this many reads.  ``None`` polls forever.
            on_update: Called with every record read, terminal one included.

        Returns:
            The terminal record.

        Raises:
            NotFoundError: If the record is missing on any read but the first.
            PollTimeoutError: If ``max_polls`` reads pass without a terminal
                status.
        """
        polls = 0
        while True:
            record = self.fetch(record_id)
            polls += 1

            if record is None:
                if polls > 1:
                    raise NotFoundError(record_id)
                logger.debug("Generation %s not visible yet, retrying", record_id)
            else:
                if on_update is not None:
                    on_update(record)
                if is_terminal(record):
                    return record

            if max_polls is not None and polls >= max_polls:
                raise PollTimeoutError(record_id, polls)
            self._sleep(self.interval)

    def watch_recent(
        self,
        limit: int | None = None,
        *,
        max_polls: int | None = None,
    ) -> Iterator[list[dict[str, Any]]]:
        """Yield the recent list every ``list_interval`` seconds.

        Stops after yielding a list in which every record is terminal, or
        after ``max_polls`` reads.
        """
        polls = 0
        while True:
            records = self.recent(limit)
            polls += 1
            yield records
            if all(is_terminal(record) for record in records):
                return
            if max_polls is not None and polls >= max_polls:
                return
            self._sleep(self.list_interval)
