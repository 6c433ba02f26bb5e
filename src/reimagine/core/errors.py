"""Exception hierarchy for Reimagine.

Synchronous errors (validation) are raised to the caller immediately.
Errors raised while a generation runs in the background are never propagated
to the submitter; the orchestrator writes them into the record instead.
"""

from __future__ import annotations


class ReimagineError(Exception):
    """Base class for all Reimagine errors."""


class ValidationError(ReimagineError):
    """A request failed validation.

    The message is intended to be displayed directly to the user.  ``errors``
    holds one ``{"field": ..., "message": ...}`` entry per failed constraint
    so callers can surface them next to the matching input.
    """

    def __init__(self, errors: list[dict[str, str]], message: str = "Invalid request data"):
        super().__init__(message)
        self.message = message
        self.errors = errors

    @property
    def fields(self) -> list[str]:
        return [error["field"] for error in self.errors]


class NotFoundError(ReimagineError):
    """No generation record exists for the requested id."""

    def __init__(self, record_id: str):
        super().__init__(f"Generation not found: {record_id}")
        self.record_id = record_id


class DuplicateRecordError(ReimagineError):
    """A record was created with an explicit id that is already in use."""

    def __init__(self, record_id: str):
        super().__init__(f"Generation already exists: {record_id}")
        self.record_id = record_id


class InvalidTransitionError(ReimagineError):
    """A status change would violate the generation lifecycle."""

    def __init__(self, record_id: str, current: str, target: str):
        super().__init__(f"Generation {record_id} cannot move from '{current}' to '{target}'")
        self.record_id = record_id
        self.current = current
        self.target = target


class ExternalServiceError(ReimagineError):
    """The external generation model failed or returned something unusable."""


class UnrecognizedOutputError(ExternalServiceError):
    """The model returned a value none of the normalisation strategies accept."""

    def __init__(self, raw: object):
        super().__init__("Unexpected output format from generation model")
        self.raw = raw


class GenerationTimeoutError(ExternalServiceError):
    """The external call did not finish within the configured timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"Generation timed out after {timeout:g} seconds")
        self.timeout = timeout


class PollTimeoutError(ReimagineError):
    """The poller gave up before the generation reached a terminal state."""

    def __init__(self, record_id: str, polls: int):
        super().__init__(f"Generation {record_id} still running after {polls} polls")
        self.record_id = record_id
        self.polls = polls
