"""Core generation lifecycle for Reimagine.

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with REIMAGINE_ in .env files

2. **Record Layer** (records.py, store.py):
   - Immutable generation records and their lifecycle rules
   - Lock-guarded in-memory store, nothing persisted

3. **Execution Layer** (generator.py, outputs.py, orchestrator.py):
   - Replicate-backed generator behind a small protocol
   - Ordered normalisation of the model's output shapes
   - Queue-fed orchestrator that drives each record to a terminal state

Usage Example
-------------
    from reimagine.core import GenerationOrchestrator, GenerationStore, ReplicateGenerator, config

    store = GenerationStore()
    orchestrator = GenerationOrchestrator(
        store, ReplicateGenerator(config), timeout=config.effective_timeout
    )
"""

from reimagine.core.config import ReimagineConfig, config
from reimagine.core.generator import ImageGenerator, ReplicateGenerator
from reimagine.core.orchestrator import GenerationJob, GenerationOrchestrator
from reimagine.core.records import GenerationRecord, GenerationStatus
from reimagine.core.store import GenerationStore

__all__ = [
    "GenerationJob",
    "GenerationOrchestrator",
    "GenerationRecord",
    "GenerationStatus",
    "GenerationStore",
    "ImageGenerator",
    "ReimagineConfig",
    "ReplicateGenerator",
    "config",
]
