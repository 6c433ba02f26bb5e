"""Generation orchestration: submission, background execution, state updates.

:class:`GenerationOrchestrator` is the only component that changes a
record's status.  Submission and execution are decoupled by a queue:

1. :meth:`~GenerationOrchestrator.submit` stores a ``pending`` record, puts a
   :class:`GenerationJob` on the queue and returns the record at once.  The
   caller never waits for the model.
2. The dispatcher (:meth:`~GenerationOrchestrator.run`, started from the
   FastAPI lifespan) takes jobs off the queue and runs each one as its own
   task, so generations proceed independently of each other.
3. :meth:`~GenerationOrchestrator.process` moves the record to
   ``processing``, awaits the external generator, normalises the output and
   finishes with ``completed`` or ``failed``.  It never raises: every error,
   including timeouts and unrecognised outputs, ends up in the record's
   ``error`` field.

There is exactly one attempt per record.  A failed generation is retried by
submitting a new request, which creates a new record.

Usage
-----
::

    orchestrator = GenerationOrchestrator(store, ReplicateGenerator(config))
    orchestrator.start()                     # inside a running event loop
    record = orchestrator.submit("make it blue", ["https://x/a.png"])
    ...
    await orchestrator.stop()                # drains in-flight jobs
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from reimagine.core.errors import GenerationTimeoutError, InvalidTransitionError
from reimagine.core.generator import ImageGenerator
from reimagine.core.outputs import resolve_result_url
from reimagine.core.records import GenerationRecord, GenerationStatus
from reimagine.core.store import GenerationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationJob:
    """Everything the worker needs to execute one generation."""

    record_id: str
    prompt: str
    image_urls: tuple[str, ...]


def describe_error(error: BaseException) -> str:
    """Return a non-empty, human-readable message for *error*."""
    message = str(error).strip()
    return message or f"Unknown error ({type(error).__name__})"


class GenerationOrchestrator:
    """Drive generation records through their lifecycle.

    Args:
        store: Record store shared with the HTTP layer.
        generator: External generation capability.
        timeout: Seconds to wait for one external call.  ``None`` waits
            indefinitely.
    """

    def __init__(
        self,
        store: GenerationStore,
        generator: ImageGenerator,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.timeout = timeout
        self._queue: asyncio.Queue[GenerationJob] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._dispatcher: asyncio.Task | None = None

    # -- Introspection ------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    @property
    def queued(self) -> int:
        """Number of jobs waiting to be picked up by the dispatcher."""
        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        """Number of generations currently executing."""
        return len(self._tasks)

    # -- Submission ---------------------------------------------------------

    def submit(self, prompt: str, image_urls: Sequence[str]) -> GenerationRecord:
        """Create a ``pending`` record and queue it for execution.

        Must be called from the event loop thread (async route handlers).

        Args:
            prompt: Validated prompt text.
            image_urls: Validated image references.

        Returns:
            The freshly created ``pending`` record.
        """
        record = self.store.create(prompt, image_urls)
        self._queue.put_nowait(
            GenerationJob(record_id=record.id, prompt=record.prompt, image_urls=record.image_urls)
        )
        logger.info("Queued generation %s (%d image(s))", record.id, len(record.image_urls))
        return record

    # -- Execution ----------------------------------------------------------

    async def process(self, job: GenerationJob) -> GenerationRecord | None:
        """Execute one job and return the terminal record.

        Returns ``None`` if the record no longer exists.  Records that already
        left ``pending`` are returned unchanged.
        """
        try:
            record = self._advance(job.record_id, GenerationStatus.PROCESSING)
        except InvalidTransitionError as e:
            logger.warning("Skipping job: %s", e)
            return self.store.get(job.record_id)
        if record is None:
            logger.warning("Generation %s vanished before processing", job.record_id)
            return None

        logger.info("Processing generation %s", job.record_id)
        try:
            output = await self._invoke(job)
            result_url = resolve_result_url(output)
        except asyncio.CancelledError:
            self._advance(job.record_id, GenerationStatus.FAILED, error="Generation cancelled")
            raise
        except Exception as e:
            logger.exception("Generation %s failed", job.record_id)
            return self._advance(job.record_id, GenerationStatus.FAILED, error=describe_error(e))

        logger.info("Generation %s completed: %s", job.record_id, result_url[:120])
        return self._advance(job.record_id, GenerationStatus.COMPLETED, result_url=result_url)

    async def _invoke(self, job: GenerationJob) -> Any:
        call = self.generator.generate(job.prompt, job.image_urls)
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(self.timeout) from e

    def _advance(self, record_id: str, target: GenerationStatus, **fields) -> GenerationRecord | None:
        return self.store.modify(record_id, lambda record: record.advance(target, **fields))

    # -- Dispatcher ---------------------------------------------------------

    async def run(self) -> None:
        """Take jobs off the queue forever, running each as its own task."""
        while True:
            job = await self._queue.get()
            try:
                task = asyncio.create_task(self.process(job), name=f"generation-{job.record_id}")
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
            finally:
                self._queue.task_done()

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Generation task %s crashed", task.get_name(), exc_info=error)

    def start(self) -> None:
        """Start the dispatcher on the running event loop."""
        if self.is_running:
            return
        self._dispatcher = asyncio.create_task(self.run(), name="generation-dispatcher")
        logger.info("Generation dispatcher started")

    async def drain(self) -> None:
        """Wait until every queued and in-flight job has finished.

        Without a running dispatcher, queued jobs are processed inline.
        """
        if not self.is_running:
            while not self._queue.empty():
                job = self._queue.get_nowait()
                try:
                    await self.process(job)
                finally:
                    self._queue.task_done()
        else:
            await self._queue.join()

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """Drain outstanding work, then stop the dispatcher."""
        await self.drain()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None
            logger.info("Generation dispatcher stopped")
