"""
LLM JSON — Parse structured output from free-form model text.

Models wrap JSON in prose or code fences and sometimes return nothing
usable. Parsing produces a tagged result: `Parsed` with the decoded value
or `Malformed` with the reason, and callers validate fields before
trusting any value.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union


@dataclass
class Parsed:
    value: Any


@dataclass
class Malformed:
    reason: str
    raw: str = ""


ParseResult = Union[Parsed, Malformed]


def _extract_balanced(text: str, open_char: str, close_char: str) -> Optional[str]:
    """Return the first balanced open/close block, skipping brackets inside strings."""
    start = text.find(open_char)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this start; try the next opening bracket
        start = text.find(open_char, start + 1)
    return None


def extract_json_object(text: str) -> Optional[str]:
    """First balanced `{...}` block in text, or None."""
    if not text:
        return None
    return _extract_balanced(text, "{", "}")


def parse_json_object(text: str, required: Iterable[str] = ()) -> ParseResult:
    """
    Decode the first JSON object in `text` and check required keys.

    A required key that is missing, None, an empty string or an empty
    list makes the result Malformed.
    """
    block = extract_json_object(text or "")
    if block is None:
        return Malformed("no JSON object found", raw=text or "")
    try:
        value = json.loads(block)
    except json.JSONDecodeError as e:
        return Malformed(f"invalid JSON: {e.msg}", raw=block)
    if not isinstance(value, dict):
        return Malformed("JSON value is not an object", raw=block)

    missing = [key for key in required if _is_blank(value.get(key))]
    if missing:
        return Malformed(f"missing required fields: {', '.join(missing)}", raw=block)
    return Parsed(value)


def parse_json_array(text: str) -> ParseResult:
    block = _extract_balanced(text or "", "[", "]")
    if block is None:
        return Malformed("no JSON array found", raw=text or "")
    try:
        value = json.loads(block)
    except json.JSONDecodeError as e:
        return Malformed(f"invalid JSON: {e.msg}", raw=block)
    if not isinstance(value, list):
        return Malformed("JSON value is not an array", raw=block)
    return Parsed(value)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    return False


def string_list(value: Any) -> List[str]:
    """Keep only non-empty strings from a model-supplied list."""
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]
