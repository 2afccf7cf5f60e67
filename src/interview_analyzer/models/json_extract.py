"""
Tolerant JSON extraction for language-model output.

Models wrap JSON in prose or code fences, leave raw newlines inside strings,
emit trailing commas or fall back to Python literal syntax. `extract_json`
recovers the first JSON object or array from such text, or raises
`MalformedOutputError`.
"""

import ast
import json
import re
from typing import Any

from interview_analyzer.pipeline.errors import MalformedOutputError

_FENCE_OPEN = re.compile(r"^```(?:json|JSON)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a BOM and surrounding markdown code fences."""
    cleaned = text.lstrip("﻿").strip()
    if "```" not in cleaned:
        return cleaned

    fence = cleaned.find("```")
    start = _first_bracket(cleaned, fence)
    if start == -1:
        return cleaned.replace("```json", "").replace("```JSON", "").replace("```", "").strip()

    end = cleaned.rfind("```")
    if end > start:
        return cleaned[start:end].strip()
    return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned[start:])).strip()


def _first_bracket(text: str, offset: int = 0) -> int:
    candidates = [i for i in (text.find("{", offset), text.find("[", offset)) if i != -1]
    return min(candidates) if candidates else -1


def find_json_span(text: str) -> str | None:
    """
    Locate the first balanced JSON object or array in text.

    Bracket matching ignores brackets inside double-quoted strings. A span that
    never closes (truncated output) is returned up to the end of the text.

    Args:
        text: Text that may contain JSON.

    Returns:
        The candidate JSON substring, or None when no bracket is present.
    """
    start = _first_bracket(text)
    if start == -1:
        return None

    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return text[start:]


def escape_control_characters(json_str: str) -> str:
    """Escape raw control characters that appear inside JSON strings."""
    result: list[str] = []
    in_string = False
    escaped = False

    for char in json_str:
        if escaped:
            result.append(char)
            escaped = False
            continue
        if char == "\\":
            result.append(char)
            escaped = True
            continue
        if char == '"':
            result.append(char)
            in_string = not in_string
            continue
        if in_string and ord(char) < 32:
            if char == "\n":
                result.append("\\n")
            elif char == "\r":
                result.append("\\r")
            elif char == "\t":
                result.append("\\t")
            else:
                result.append(f"\\u{ord(char):04x}")
            continue
        result.append(char)

    return "".join(result)


def repair_json(json_str: str) -> str:
    """
    Attempt to fix common JSON issues from LLM output.

    Args:
        json_str: Raw JSON string that may have issues.

    Returns:
        Cleaned JSON string.
    """
    if not json_str:
        return ""

    result = strip_code_fences(json_str)

    # Normalize curly quotes.
    result = (
        result.replace("“", '"')
        .replace("”", '"')
        .replace("‘", "'")
        .replace("’", "'")
    )

    # Remove trailing commas before closing braces/brackets.
    result = re.sub(r",(\s*[}\]])", r"\1", result)

    # Convert Python literals to JSON literals.
    result = re.sub(r"\bNone\b", "null", result)
    result = re.sub(r"\bTrue\b", "true", result)
    result = re.sub(r"\bFalse\b", "false", result)

    # Quote bare keys ({foo: "bar"}), only right after { or ,
    result = re.sub(
        r"([\{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)",
        r'\1"\2"\3',
        result,
    )

    # Python dict with single quotes only.
    if result.count("'") > 0 and result.count('"') == 0:
        result = result.replace("'", '"')

    return escape_control_characters(result)


def coerce_to_json_types(obj: Any) -> Any:
    """Coerce a Python object produced by `ast.literal_eval` to JSON-safe types."""
    if obj is ...:
        return None
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {str(k): coerce_to_json_types(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [coerce_to_json_types(v) for v in obj]
    return str(obj)


def parse_json_loose(raw: str) -> dict[str, Any] | list[Any] | None:
    """Parse JSON with best-effort repair.

    Returns a dict/list on success, else None.
    """
    if not raw or not raw.strip():
        return None

    for candidate in (raw, escape_control_characters(raw)):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, (dict, list)):
            return parsed

    cleaned = repair_json(raw)
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, (dict, list)):
            return parsed
    except json.JSONDecodeError:
        pass

    # Python literal fallback (single quotes, tuples), then round-trip through json.
    try:
        obj = ast.literal_eval(raw.strip())
    except (ValueError, SyntaxError, MemoryError, RecursionError):
        try:
            obj = ast.literal_eval(cleaned)
        except (ValueError, SyntaxError, MemoryError, RecursionError):
            return None

    if not isinstance(obj, (dict, list, tuple, set)):
        return None

    try:
        return json.loads(json.dumps(coerce_to_json_types(obj)))
    except (TypeError, ValueError):
        return None


def extract_json(text: str) -> dict[str, Any] | list[Any]:
    """
    Extract the first JSON object or array from model output.

    Args:
        text: Raw model output.

    Returns:
        The parsed object or array.

    Raises:
        MalformedOutputError: If no JSON value can be recovered.
    """
    if not text or not text.strip():
        raise MalformedOutputError("Empty model response", raw=text or "")

    cleaned = strip_code_fences(text)
    parsed = parse_json_loose(cleaned) if cleaned[:1] in "{[" else None
    if parsed is not None:
        return parsed

    span = find_json_span(cleaned)
    if span is None:
        raise MalformedOutputError("No JSON object or array found in response", raw=text[:500])

    parsed = parse_json_loose(span)
    if parsed is None:
        raise MalformedOutputError("Could not parse JSON from response", raw=text[:500])
    return parsed
