"""Tests for reimagine.core.orchestrator - background generation lifecycle.

Each test runs its scenario with ``asyncio.run`` so the orchestrator's queue
and tasks live on a fresh event loop.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import RESULT_URL, FailingGenerator, GatedGenerator, SlowGenerator, StaticGenerator

from reimagine.core.errors import ExternalServiceError
from reimagine.core.orchestrator import GenerationJob, GenerationOrchestrator, describe_error
from reimagine.core.records import GenerationStatus
from reimagine.core.store import GenerationStore


async def _wait_for_status(store: GenerationStore, record_id: str, status: GenerationStatus) -> None:
    for _ in range(1000):
        if store.get(record_id).status is status:
            return
        await asyncio.sleep(0.001)
    raise AssertionError(f"{record_id} never reached {status.value}")


class TestSubmit:
    def test_submit_returns_pending_record(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, StaticGenerator())
            record = orchestrator.submit("make it blue", ["https://x/a.png"])
            assert record.status is GenerationStatus.PENDING
            assert record.result_url is None
            assert record.error is None
            assert orchestrator.queued == 1
            return record

        record = asyncio.run(scenario())
        assert store.get(record.id).status is GenerationStatus.PENDING

    def test_submit_does_not_call_generator(self, store):
        generator = StaticGenerator()

        async def scenario():
            GenerationOrchestrator(store, generator).submit("p", ["https://x/a.png"])

        asyncio.run(scenario())
        assert generator.calls == []


class TestProcess:
    def test_success(self, store):
        generator = StaticGenerator()

        async def scenario():
            orchestrator = GenerationOrchestrator(store, generator)
            record = orchestrator.submit("make it blue", ["https://x/a.png"])
            await orchestrator.drain()
            return record.id

        record_id = asyncio.run(scenario())
        final = store.get(record_id)
        assert final.status is GenerationStatus.COMPLETED
        assert final.result_url == RESULT_URL
        assert final.error is None
        assert final.completed_at is not None
        assert generator.calls == [("make it blue", ("https://x/a.png",))]

    def test_generator_failure_marks_failed(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, FailingGenerator(RuntimeError("model exploded")))
            record = orchestrator.submit("p", ["https://x/a.png"])
            await orchestrator.drain()
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.FAILED
        assert final.error == "model exploded"
        assert final.result_url is None
        assert final.completed_at is not None

    def test_blank_error_message_is_described(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, FailingGenerator(ExternalServiceError()))
            record = orchestrator.submit("p", ["https://x/a.png"])
            await orchestrator.drain()
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.FAILED
        assert final.error == "Unknown error (ExternalServiceError)"

    def test_unrecognized_output_marks_failed(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, StaticGenerator(output={"weird": True}))
            record = orchestrator.submit("p", ["https://x/a.png"])
            await orchestrator.drain()
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.FAILED
        assert final.error == "Unexpected output format from generation model"

    def test_timeout_marks_failed(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, SlowGenerator(delay=5), timeout=0.05)
            record = orchestrator.submit("p", ["https://x/a.png"])
            await orchestrator.drain()
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.FAILED
        assert final.error == "Generation timed out after 0.05 seconds"

    def test_cancellation_marks_failed(self, store):
        """A cancelled generation is recorded as failed and the cancel propagates."""

        async def scenario():
            gate = asyncio.Event()
            orchestrator = GenerationOrchestrator(store, GatedGenerator(gate))
            record = store.create("p", ["https://x/a.png"])
            task = asyncio.create_task(
                orchestrator.process(GenerationJob(record.id, record.prompt, record.image_urls))
            )
            await _wait_for_status(store, record.id, GenerationStatus.PROCESSING)

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.FAILED
        assert final.error == "Generation cancelled"
        assert final.result_url is None
        assert final.completed_at is not None

    def test_missing_record_is_skipped(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, StaticGenerator())
            return await orchestrator.process(GenerationJob("ghost", "p", ("https://x/a.png",)))

        assert asyncio.run(scenario()) is None

    def test_terminal_record_is_not_reprocessed(self, store):
        generator = StaticGenerator()

        async def scenario():
            orchestrator = GenerationOrchestrator(store, generator)
            record = orchestrator.submit("p", ["https://x/a.png"])
            await orchestrator.drain()
            job = GenerationJob(record.id, record.prompt, record.image_urls)
            return await orchestrator.process(job)

        again = asyncio.run(scenario())
        assert again.status is GenerationStatus.COMPLETED
        assert len(generator.calls) == 1


class TestDispatcher:
    def test_status_moves_through_processing(self, store):
        async def scenario():
            gate = asyncio.Event()
            orchestrator = GenerationOrchestrator(store, GatedGenerator(gate))
            orchestrator.start()
            record = orchestrator.submit("p", ["https://x/a.png"])

            await _wait_for_status(store, record.id, GenerationStatus.PROCESSING)
            assert orchestrator.in_flight == 1
            processing = store.get(record.id)
            assert processing.result_url is None
            assert processing.error is None

            gate.set()
            await orchestrator.stop()
            assert not orchestrator.is_running
            return record.id

        final = store.get(asyncio.run(scenario()))
        assert final.status is GenerationStatus.COMPLETED

    def test_jobs_run_independently(self, store):
        """A blocked generation does not hold up the others."""

        async def scenario():
            gate = asyncio.Event()
            gated = GenerationOrchestrator(store, GatedGenerator(gate))
            gated.start()
            blocked = gated.submit("blocked", ["https://x/a.png"])
            await _wait_for_status(store, blocked.id, GenerationStatus.PROCESSING)

            # Swap the generator: later jobs finish immediately.
            gated.generator = StaticGenerator()
            quick = [gated.submit(f"quick {i}", ["https://x/a.png"]) for i in range(3)]
            for record in quick:
                await _wait_for_status(store, record.id, GenerationStatus.COMPLETED)
            assert store.get(blocked.id).status is GenerationStatus.PROCESSING

            gate.set()
            await gated.stop()
            return blocked.id

        assert store.get(asyncio.run(scenario())).status is GenerationStatus.COMPLETED

    def test_failures_do_not_stop_dispatcher(self, store):
        async def scenario():
            orchestrator = GenerationOrchestrator(store, FailingGenerator(RuntimeError("nope")))
            orchestrator.start()
            first = orchestrator.submit("a", ["https://x/a.png"])
            await orchestrator.drain()
            orchestrator.generator = StaticGenerator()
            second = orchestrator.submit("b", ["https://x/a.png"])
            await orchestrator.stop()
            return first.id, second.id

        first_id, second_id = asyncio.run(scenario())
        assert store.get(first_id).status is GenerationStatus.FAILED
        assert store.get(second_id).status is GenerationStatus.COMPLETED


def test_describe_error():
    assert describe_error(ValueError("bad input")) == "bad input"
    assert describe_error(KeyError()) == "Unknown error (KeyError)"
