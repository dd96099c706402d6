"""Parsing of completion responses.

Two tiers, each returning a tagged ParseOutcome so callers (and tests) can
tell the paths apart:

  1. strict  - the response is a JSON object and the field holds an allowed label
  2. recover - an allowed label appears somewhere in the raw response text

Anything else is FAILED and the caller decides the fallback.
"""

import json
import re
from collections.abc import Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel

from job_extraction.core.errors import MalformedExtraction

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


class ParseStatus(str, Enum):
    PARSED = "parsed"
    RECOVERED = "recovered"
    FAILED = "failed"


class ParseOutcome(BaseModel):
    status: ParseStatus
    value: str | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not ParseStatus.FAILED


def strip_code_fence(raw_text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    cleaned = _FENCE_OPEN.sub("", raw_text.strip())
    return _FENCE_CLOSE.sub("", cleaned)


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """Parse a completion response that must be a JSON object.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.
    Raises MalformedExtraction on invalid JSON or a non-object payload.
    """
    cleaned = strip_code_fence(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse completion response as JSON: {e}"
        raise MalformedExtraction(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object, got {type(data).__name__}"
        raise MalformedExtraction(msg)
    return data


def _normalise(label: str) -> str:
    return label.strip().lower().replace("-", "_").replace(" ", "_")


def parse_label(raw_text: str, allowed: Sequence[str], *, key: str = "level") -> ParseOutcome:
    """Pick one label from ``allowed`` out of a completion response.

    Strict tier: ``{"<key>": "<label>"}`` where the label matches an allowed
    value after case/space normalisation. Recovery tier: the first allowed
    label, longest first, contained in the raw response.
    """
    by_norm = {_normalise(label): label for label in allowed}

    try:
        data = parse_json_object(raw_text)
    except MalformedExtraction as e:
        detail = str(e)
    else:
        candidate = data.get(key)
        if isinstance(candidate, str) and _normalise(candidate) in by_norm:
            return ParseOutcome(status=ParseStatus.PARSED, value=by_norm[_normalise(candidate)])
        detail = f"'{key}' value {candidate!r} is not one of {list(allowed)}"

    recovered = _find_contained(raw_text, allowed)
    if recovered is not None:
        return ParseOutcome(status=ParseStatus.RECOVERED, value=recovered, detail=detail)

    return ParseOutcome(status=ParseStatus.FAILED, detail=detail)


def _find_contained(raw_text: str, allowed: Sequence[str]) -> str | None:
    text = raw_text.lower()
    # Longest first so "senior_staff" wins over "senior".
    for label in sorted(allowed, key=len, reverse=True):
        forms = {label.lower(), label.lower().replace("_", " "), label.lower().replace("_", "-")}
        if any(form and form in text for form in forms):
            return label
    return None
