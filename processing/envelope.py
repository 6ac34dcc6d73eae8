# processing/envelope.py
"""Decoding and unwrapping of workflow response envelopes.

The workflow service replies with ``{"output": {"type": ..., "value": ...}}``.
When ``type`` is ``"string"`` the ``value`` usually holds the story encoded as
a JSON string, so the story is JSON inside JSON. All knowledge of that layout
lives in this module.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

OUTPUT_KEY = "output"
TYPE_KEY = "type"
VALUE_KEY = "value"

STRING_OUTPUT = "string"
CONTROL_FLOW_EXCLUDED = "control-flow-excluded"


class EnvelopeDecodeError(ValueError):
    """Raised when a response body is not a JSON object."""


class ContentKind(str, Enum):
    STRUCTURED = "structured"
    TEXT = "text"
    ENVELOPE = "envelope"


@dataclass(frozen=True)
class UnwrappedContent:
    """What ``unwrap_envelope`` found inside an envelope."""

    kind: ContentKind
    story: Any = None
    story_text: str | None = None
    parse_error: str | None = None


def decode_envelope(raw: bytes | str) -> dict[str, Any]:
    """Parse a response body into an envelope dictionary."""
    try:
        data = json.loads(raw)
    # ValueError also covers oversized integers; deep nesting raises RecursionError
    except (ValueError, RecursionError) as exc:
        raise EnvelopeDecodeError(f"{type(exc).__name__}: {exc}") from exc
    if not isinstance(data, dict):
        raise EnvelopeDecodeError(
            f"expected a JSON object, got {type(data).__name__}"
        )
    return data


def _output_section(envelope: dict[str, Any]) -> dict[str, Any] | None:
    output = envelope.get(OUTPUT_KEY)
    return output if isinstance(output, dict) else None


def output_type(envelope: dict[str, Any]) -> str | None:
    """Return ``output.type`` if present."""
    output = _output_section(envelope)
    if output is None:
        return None
    value = output.get(TYPE_KEY)
    return value if isinstance(value, str) else None


def is_control_flow_excluded(envelope: dict[str, Any]) -> bool:
    """True when the workflow engine skipped evaluation and produced nothing."""
    return output_type(envelope) == CONTROL_FLOW_EXCLUDED


def unwrap_envelope(envelope: dict[str, Any]) -> UnwrappedContent:
    """Extract the story from a complete envelope.

    A nested value that is not valid JSON is returned as text; this never
    raises for a well-formed envelope.
    """
    output = _output_section(envelope)
    if output is None or output.get(TYPE_KEY) != STRING_OUTPUT:
        return UnwrappedContent(kind=ContentKind.ENVELOPE)

    value = output.get(VALUE_KEY)
    if not isinstance(value, str):
        return UnwrappedContent(kind=ContentKind.ENVELOPE)

    try:
        story = json.loads(value)
    except (ValueError, RecursionError) as exc:
        logger.debug(f"Nested story value is not JSON; keeping raw text: {exc}")
        return UnwrappedContent(
            kind=ContentKind.TEXT, story_text=value, parse_error=str(exc)
        )
    return UnwrappedContent(kind=ContentKind.STRUCTURED, story=story)
