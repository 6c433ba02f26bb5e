"""In-memory generation record store.

The store is pure data access: it assigns identities, looks records up,
merges updates, and lists recent records.  Lifecycle rules live on
:class:`~reimagine.core.records.GenerationRecord` and are applied by the
orchestrator through :meth:`GenerationStore.modify`.

Every operation holds a lock.  FastAPI runs sync handlers in a worker thread
pool while the orchestrator updates records from the event loop, so the
backing dict is shared across threads.

Nothing is persisted; all records are lost when the process exits.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence

from reimagine.core.errors import DuplicateRecordError
from reimagine.core.records import GenerationRecord

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10


class GenerationStore:
    """Thread-safe keyed table of :class:`GenerationRecord` objects.

    Args:
        lock: Lock guarding the table.  A fresh :class:`threading.Lock` is
            created when omitted.
    """

    def __init__(self, lock: threading.Lock | None = None) -> None:
        self._lock = lock or threading.Lock()
        self._records: dict[str, GenerationRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    def create(
        self,
        prompt: str,
        image_urls: Sequence[str],
        record_id: str | None = None,
    ) -> GenerationRecord:
        """Insert a new ``pending`` record and return it.

        Args:
            prompt: Prompt text, already validated.
            image_urls: Image references, already validated.
            record_id: Explicit identifier.  A UUID4 is generated when omitted.

        Raises:
            DuplicateRecordError: If *record_id* is already present.
        """
        with self._lock:
            if record_id is None:
                record_id = str(uuid.uuid4())
                while record_id in self._records:
                    record_id = str(uuid.uuid4())
            elif record_id in self._records:
                raise DuplicateRecordError(record_id)

            record = GenerationRecord(id=record_id, prompt=prompt, image_urls=tuple(image_urls))
            self._records[record_id] = record

        logger.debug("Created generation %s", record_id)
        return record

    def get(self, record_id: str) -> GenerationRecord | None:
        """Return the record for *record_id*, or ``None`` if it does not exist."""
        with self._lock:
            return self._records.get(record_id)

    def modify(
        self,
        record_id: str,
        change: Callable[[GenerationRecord], GenerationRecord],
    ) -> GenerationRecord | None:
        """Replace a record with ``change(record)`` atomically.

        Exceptions raised by *change* propagate and leave the record untouched.

        Returns:
            The new record version, or ``None`` if *record_id* is unknown.
        """
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = change(current)
            self._records[record_id] = updated
            return updated

    def update(self, record_id: str, **fields) -> GenerationRecord | None:
        """Merge *fields* into the record for *record_id*.

        Fields are validated like a new record (see
        :meth:`GenerationRecord.merged`); on error the stored version is kept.

        Returns:
            The updated record, or ``None`` if *record_id* is unknown.
        """
        return self.modify(record_id, lambda record: record.merged(**fields))

    def list_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[GenerationRecord]:
        """Return up to *limit* records, newest first.

        Records created at the same instant are ordered by insertion, the
        later insert first.
        """
        if limit <= 0:
            return []
        with self._lock:
            indexed = list(enumerate(self._records.values()))
        indexed.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [record for _, record in indexed[:limit]]
