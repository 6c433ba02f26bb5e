"""Generation record model and lifecycle rules.

A :class:`GenerationRecord` tracks one prompt + images request from
submission to a terminal outcome.  Records are immutable pydantic models;
every change produces a new version through :meth:`GenerationRecord.advance`,
which also enforces the lifecycle::

    pending -> processing -> completed
                          -> failed

Records serialise with camelCase keys (``imageUrls``, ``resultUrl``,
``createdAt``...) which is the JSON shape the front-end consumes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from reimagine.core.errors import InvalidTransitionError


class GenerationStatus(str, Enum):
    """Lifecycle states of a generation record."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({GenerationStatus.COMPLETED, GenerationStatus.FAILED})

ALLOWED_TRANSITIONS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.PENDING: frozenset({GenerationStatus.PROCESSING}),
    GenerationStatus.PROCESSING: frozenset({GenerationStatus.COMPLETED, GenerationStatus.FAILED}),
    GenerationStatus.COMPLETED: frozenset(),
    GenerationStatus.FAILED: frozenset(),
}


# (required, excluded) outcome fields per terminal status.
_OUTCOME_FIELDS: dict[GenerationStatus, tuple[str, str]] = {
    GenerationStatus.COMPLETED: ("result_url", "error"),
    GenerationStatus.FAILED: ("error", "result_url"),
}


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class GenerationRecord(BaseModel):
    """One request to transform a set of input images according to a prompt.

    Attributes:
        id: Opaque unique identifier assigned by the store.
        prompt: Trimmed, non-empty prompt text.
        image_urls: Ordered reference strings (URLs or ``data:`` URLs).
        status: Current lifecycle state.
        result_url: Reference to the generated image, set on completion.
        error: Human-readable failure message, set on failure.
        created_at: Creation timestamp (UTC).
        completed_at: Timestamp of the terminal transition (UTC).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    prompt: str
    image_urls: tuple[str, ...] = ()
    status: GenerationStatus = GenerationStatus.PENDING
    result_url: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def merged(self, **fields) -> GenerationRecord:
        """Return a validated copy of this record with *fields* applied.

        Keys may use either the attribute name (``result_url``) or the JSON
        alias (``resultUrl``); values are coerced the same way as on
        construction, so ``status="processing"`` becomes
        :attr:`GenerationStatus.PROCESSING`.

        Raises:
            ValueError: If a key is not a record field or tries to change
                ``id``.
            pydantic.ValidationError: If a value does not fit its field.
        """
        names = _field_names()
        unknown = sorted(key for key in fields if key not in names)
        if unknown:
            raise ValueError(f"Unknown generation record field(s): {', '.join(unknown)}")
        data = self.model_dump()
        data.update((names[key], value) for key, value in fields.items())
        if data["id"] != self.id:
            raise ValueError("The id of a generation record cannot change")
        return type(self).model_validate(data)

    def advance(self, target: GenerationStatus, **fields) -> GenerationRecord:
        """Return a copy of this record moved to *target*.

        Terminal transitions stamp ``completed_at`` automatically.  A
        ``completed`` record carries a ``result_url`` and no ``error``; a
        ``failed`` record carries an ``error`` and no ``result_url``.

        Raises:
            InvalidTransitionError: If *target* is not reachable from the
                current status.
            ValueError: If a terminal transition lacks its outcome field or
                sets the other one.
        """
        target = GenerationStatus(target)
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        update = dict(fields, status=target)
        if target.is_terminal:
            required, excluded = _OUTCOME_FIELDS[target]
            if not update.get(required):
                raise ValueError(f"A {target.value} generation needs '{required}'")
            if update.get(excluded) is not None:
                raise ValueError(f"A {target.value} generation cannot set '{excluded}'")
            update.setdefault("completed_at", utcnow())
        return self.merged(**update)

    def to_json(self) -> dict:
        """Serialise to the camelCase JSON shape used by the API."""
        return self.model_dump(mode="json", by_alias=True)


def _field_names() -> dict[str, str]:
    """Map every attribute name and JSON alias to its attribute name."""
    names: dict[str, str] = {}
    for name, info in GenerationRecord.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names
