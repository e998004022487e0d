from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

# Narration models like to put in front of the JSON. Stripped repeatedly, first match wins.
LEAD_IN_PHRASES = (
    "here is the json response:",
    "here is the json output:",
    "here is the json:",
    "here's the json:",
    "here is the requested json:",
    "here is the result:",
    "here are the tasks:",
    "sure, here is the json:",
    "sure! here is the json:",
    "sure, here's the json:",
    "certainly! here is the json:",
    "json output:",
    "json:",
    "output:",
    "response:",
)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class Ok:
    value: Any
    ok: bool = True


@dataclass(frozen=True)
class ParseFailed:
    reason: str
    ok: bool = False


ParseResult = Union[Ok, ParseFailed]


def _strip_lead_in(text: str) -> str:
    s = text.lstrip()
    changed = True
    while changed:
        changed = False
        lowered = s.lower()
        for phrase in LEAD_IN_PHRASES:
            if lowered.startswith(phrase):
                s = s[len(phrase):].lstrip()
                changed = True
                break
    return s


def _strip_fences(text: str) -> str:
    s = _FENCE_OPEN.sub("", text.strip(), count=1)
    return _FENCE_CLOSE.sub("", s, count=1).strip()


def extract_json(text: Any) -> ParseResult:
    """
    Pull a JSON object out of a model reply that may carry narration or
    code fences around it. Never raises.
    """
    if not isinstance(text, str) or not text.strip():
        return ParseFailed("empty reply")

    s = _strip_fences(_strip_lead_in(text))

    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end <= start:
        return ParseFailed("no JSON object in reply")

    try:
        value = json.loads(s[start : end + 1])
    except (ValueError, RecursionError) as e:
        return ParseFailed(f"invalid JSON: {e}")

    if not isinstance(value, dict):
        return ParseFailed("reply is not a JSON object")
    return Ok(value)


def parse_payload(text: Any, schema: Type[T]) -> ParseResult:
    """extract_json, then validate against a stage schema. Ok carries the model instance."""
    raw = extract_json(text)
    if not raw.ok:
        return raw
    try:
        return Ok(schema.model_validate(raw.value))
    except ValidationError as e:
        return ParseFailed(f"{schema.__name__} validation failed: {e.error_count()} error(s)")
