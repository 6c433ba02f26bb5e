"""Normalisation of external model outputs into a single result reference.

Replicate returns different shapes depending on the model and client
version: a plain URL string, a ``FileOutput`` exposing ``.url``, a list of
either, or some other object whose ``str()`` is the URL.  Instead of sniffing
the value ad hoc at the call site, :func:`classify_output` maps the raw value
onto a small tagged union and :func:`resolve_result_url` matches on it in a
fixed order:

1. :class:`TextOutput` - a bare string.
2. :class:`LocatedOutput` - an object exposing ``url`` (attribute or method)
   or ``href``.
3. :class:`PrintableOutput` - an object with its own ``__str__``.
4. :class:`UnrecognizedOutput` - anything else; resolving it raises
   :class:`~reimagine.core.errors.UnrecognizedOutputError`.

Non-empty lists and tuples are classified by their first element.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from reimagine.core.errors import UnrecognizedOutputError

_LOCATION_ATTRIBUTES = ("url", "href")


@dataclass(frozen=True)
class TextOutput:
    value: str


@dataclass(frozen=True)
class LocatedOutput:
    url: str
    attribute: str


@dataclass(frozen=True)
class PrintableOutput:
    text: str


@dataclass(frozen=True)
class UnrecognizedOutput:
    raw: Any


ModelOutput = Union[TextOutput, LocatedOutput, PrintableOutput, UnrecognizedOutput]


def _location(raw: Any) -> LocatedOutput | None:
    for attribute in _LOCATION_ATTRIBUTES:
        value = getattr(raw, attribute, None)
        if value is None:
            continue
        if callable(value):
            value = value()
        if value is None:
            continue
        return LocatedOutput(url=str(value), attribute=attribute)
    return None


def _is_printable(raw: Any) -> bool:
    if raw is None or isinstance(raw, (bytes, bytearray, bool, int, float, Mapping)):
        return False
    return type(raw).__str__ is not object.__str__


def classify_output(raw: Any) -> ModelOutput:
    """Map a raw model output onto the :data:`ModelOutput` union.

    Args:
        raw: Whatever the external model returned.

    Returns:
        The first matching variant, or :class:`UnrecognizedOutput`.
    """
    if isinstance(raw, str):
        return TextOutput(raw)

    if isinstance(raw, (list, tuple)):
        if not raw:
            return UnrecognizedOutput(raw)
        return classify_output(raw[0])

    located = _location(raw)
    if located is not None:
        return located

    if _is_printable(raw):
        return PrintableOutput(str(raw))

    return UnrecognizedOutput(raw)


def resolve_result_url(raw: Any) -> str:
    """Return the result reference contained in *raw*.

    Raises:
        UnrecognizedOutputError: If no strategy applies or the reference it
            yields is empty.
    """
    output = classify_output(raw)

    if isinstance(output, TextOutput):
        url = output.value
    elif isinstance(output, LocatedOutput):
        url = output.url
    elif isinstance(output, PrintableOutput):
        url = output.text
    else:
        raise UnrecognizedOutputError(raw)

    url = url.strip()
    if not url:
        raise UnrecognizedOutputError(raw)
    return url
