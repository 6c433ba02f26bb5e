"""Reimagine - prompt-driven image transformation backed by a hosted model."""

__version__ = "0.1.0"

from reimagine.core.config import ReimagineConfig, config
from reimagine.core.records import GenerationRecord, GenerationStatus

__all__ = [
    "GenerationRecord",
    "GenerationStatus",
    "ReimagineConfig",
    "config",
]
