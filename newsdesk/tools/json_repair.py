"""
Standalone JSON extraction utilities for LLM output parsing.

Handles common LLM output issues:
- Markdown code block wrapping
- Prose before/after the payload
- Control characters inside strings
- List extraction from wrapper dict keys
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r'^```[a-zA-Z]*\s*\n?')
_FENCE_CLOSE = re.compile(r'\n?\s*```\s*$')
_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*[ \t]*\n?(.*?)```", re.DOTALL)

# Keys models like to wrap a list in, e.g. {"clusters": [...]}
_LIST_WRAPPER_KEYS = (
    "clusters", "events", "mergeGroups", "merges", "groups",
    "articles", "summaries", "results", "items", "data",
)


class JSONExtractionError(ValueError):
    """No well-formed JSON object or array could be located in the text."""


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence and its closing fence, if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub('', cleaned)
        cleaned = _FENCE_CLOSE.sub('', cleaned)
    return cleaned.strip()


def parse_json_response(response: str) -> Any:
    """Parse the first well-formed JSON object/array in an LLM response.

    Raises JSONExtractionError when nothing parseable is found.
    """
    for value in iter_json_values(response):
        return value
    raise JSONExtractionError(f"No parseable JSON found in response: {(response or '').strip()[:200]!r}")


def iter_json_values(response: str) -> Iterator[Any]:
    """Yield every top-level JSON object/array in the response, best guess first.

    Contents of ```fenced``` blocks come first, wherever they sit in the text,
    then the values found in the whole response. Values nested inside an
    already yielded value are not yielded again.
    """
    if not response or not response.strip():
        return
    sources = [m.group(1) for m in _FENCED_BLOCK.finditer(response)]
    sources.append(strip_code_fences(response))
    for source in sources:
        yield from _top_level_values(source)


def _top_level_values(text: str) -> Iterator[Any]:
    pos = 0
    while True:
        start = _next_open(text, pos)
        if start is None:
            return
        end = _match_close(text, start)
        parsed = _loads(text[start:end + 1]) if end is not None else None
        if parsed is None:
            pos = start + 1
            continue
        yield parsed[0]
        pos = end + 1


def _next_open(text: str, pos: int) -> Optional[int]:
    for i in range(pos, len(text)):
        if text[i] in '{[':
            return i
    return None


def _loads(candidate: str) -> Optional[Tuple[Any]]:
    """(value,) if the candidate parses, else None."""
    try:
        return (json.loads(candidate),)
    except json.JSONDecodeError:
        pass
    # Models sometimes put literal newlines/tabs inside string values
    try:
        return (json.loads(candidate, strict=False),)
    except json.JSONDecodeError:
        return None


def _match_close(text: str, start: int):
    """Index of the bracket closing text[start], honouring strings; None if unbalanced."""
    stack = []
    in_string = False
    escape_next = False
    close_map = {'{': '}', '[': ']'}
    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if ch == '\\' and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in close_map:
            stack.append(close_map[ch])
        elif ch in '}]':
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return i
    return None


def extract_list_from_response(data: Union[Dict, List, Any]) -> List[Any]:
    """Extract a list from LLM response data.

    Handles common patterns where the LLM wraps a list inside a dict
    with keys like 'clusters', 'results', 'data', etc.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _LIST_WRAPPER_KEYS:
            if key in data and isinstance(data[key], list):
                return data[key]
        return [data]
    return [data] if data else []
