"""
Helpers for pulling a JSON object out of model output.

Models wrap JSON in code fences, add prose around it, leave trailing
commas or emit raw control characters inside strings. These helpers
tolerate all of that and fail with ValueError otherwise.
"""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def clean_json_string(text: str) -> str:
    """Remove trailing commas and stray control characters."""
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _CONTROL_CHARS.sub("", text)


def _strip_fences(content: str) -> str:
    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        return content[start:end if end != -1 else None].strip()
    if "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        return content[start:end if end != -1 else None].strip()
    return content.strip()


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse the outermost JSON object in a model response.

    Args:
        content: Raw model output.

    Returns:
        The decoded object.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    text = _strip_fences(content)
    candidates = [text]

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        for attempt in (candidate, clean_json_string(candidate)):
            try:
                data = json.loads(attempt, strict=False)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                return data

    raise ValueError("No JSON object found in model response")
