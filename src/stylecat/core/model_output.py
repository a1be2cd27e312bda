"""Recover structured JSON from free-text model output.

Vision models are asked to answer with a bare JSON object, but in practice
the answer may arrive wrapped in Markdown fences, preceded by a sentence of
chatter, or split into streamed chunks.  The helpers here normalise that
output and pull out the first balanced ``{...}`` object.
"""

from __future__ import annotations

import json
import re

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```\s*$")


class ModelOutputError(ValueError):
    """Raised when model output does not contain a usable JSON object."""


def join_output(output) -> str:
    """Flatten a Replicate ``output`` value (string or list of chunks)."""
    if output is None:
        return ""
    if isinstance(output, list):
        return "".join(str(chunk) for chunk in output)
    return str(output)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    raw = raw.strip()
    raw = _LEADING_FENCE.sub("", raw)
    return _TRAILING_FENCE.sub("", raw)


def extract_json_object(raw: str) -> str | None:
    """Return the first balanced JSON object in *raw*.

    Scanning starts at the first ``{``.  Braces that occur inside JSON string
    literals are ignored, and backslash escapes inside strings are honoured
    so that ``"\\""`` does not end the string early.

    Args:
        raw: Arbitrary text that may contain a JSON object.

    Returns:
        The object's source text, or ``None`` if no balanced object exists.
    """
    start = raw.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(raw)):
        ch = raw[pos]
        if escaped:
            escaped = False
            continue
        if in_string:
            if ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start : pos + 1]
    return None


def parse_analysis(output) -> dict:
    """Parse a style analysis from raw model output.

    Args:
        output: The model's ``output`` (string or list of string chunks).

    Returns:
        Dictionary with ``title``, ``description``, ``prompt``,
        ``background_prompt`` and ``tags``; missing fields default to empty.

    Raises:
        ModelOutputError: If no JSON object can be found or decoded.
    """
    raw = strip_code_fences(join_output(output))
    json_str = extract_json_object(raw)
    if json_str is None:
        raise ModelOutputError("No valid JSON object found in the model response")

    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise ModelOutputError(f"Model returned malformed JSON: {exc}") from exc

    tags = parsed.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",")]

    return {
        "title": parsed.get("title") or "",
        "description": parsed.get("description") or "",
        "prompt": parsed.get("prompt") or "",
        "background_prompt": parsed.get("background_prompt") or "",
        "tags": [str(t).strip().lower() for t in tags if str(t).strip()],
    }
