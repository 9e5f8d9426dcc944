"""
Tolerant JSON parsing for LLM responses.

Models wrap JSON in markdown fences, add trailing commas or comments, or
surround the object with prose. These helpers recover the object where
possible and fail loudly where not, so the completion service can tell a
usable answer from a malformed one.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_PATTERNS = (
    re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE),
    re.compile(r"```\s*([\s\S]*?)\s*```"),
)


def extract_json_from_text(text: str) -> str:
    """
    Extract the JSON part of text that may contain markdown or prose.

    Handles ```json fences, bare ``` fences, and an object or array
    embedded in other text. Returns the stripped input when nothing
    JSON-shaped is found.
    """
    text = text.strip()

    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()

    # Outermost object first, then array
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            return text[start : end + 1]

    return text


def clean_json_string(text: str) -> str:
    """
    Remove common LLM JSON defects.

    - JavaScript-style comments
    - Trailing commas before } or ]
    """
    text = re.sub(r"^\s*//[^\n]*", "", text, flags=re.MULTILINE)
    text = re.sub(r"/\*[\s\S]*?\*/", "", text)
    text = re.sub(r",\s*([\}\]])", r"\1", text)
    return text.strip()


def load_json_object(text: str) -> dict[str, Any]:
    """
    Parse an LLM response into a JSON object.

    Tries, in order: direct parse, extraction from markdown/prose, and
    extraction followed by cleanup.

    Raises:
        ValueError: If no strategy yields a JSON object
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    candidates = [text]
    extracted = extract_json_from_text(text)
    if extracted != text:
        candidates.append(extracted)
    candidates.append(clean_json_string(extracted))

    last_error: Exception | None = None
    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
            continue
        if isinstance(result, dict):
            return result
        last_error = ValueError(f"Expected a JSON object, got {type(result).__name__}")

    raise ValueError(f"Could not parse JSON object: {last_error}")


__all__ = [
    "extract_json_from_text",
    "clean_json_string",
    "load_json_object",
]
