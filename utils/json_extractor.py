"""
Tolerant JSON extraction from model output

Model responses arrive fenced, wrapped in prose, nested in provider envelopes
or truncated. `extract_json` tries increasingly permissive strategies and
returns the first JSON object it finds, or None. It never raises.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Set

from utils.envelope import unwrap_envelope

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```\s*json\s*", re.IGNORECASE)
_EDGE_BACKTICKS = re.compile(r"^`+|`+$")


@dataclass
class ExtractionResult:
    value: Optional[dict] = None
    strategy: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.value is not None


def strip_fences(text: str) -> str:
    """Remove markdown code fences and stray backticks"""
    cleaned = _FENCE_OPEN.sub("", text).replace("```", "")
    return _EDGE_BACKTICKS.sub("", cleaned)


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def parse_direct(text: str) -> Optional[dict]:
    return _loads_object(strip_fences(text).strip())


def parse_outer_braces(text: str) -> Optional[dict]:
    cleaned = strip_fences(text).strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first < 0 or last <= first:
        return None
    return _loads_object(cleaned[first:last + 1])


def _parse_text(text: str) -> ExtractionResult:
    value = parse_direct(text)
    if value is not None:
        return ExtractionResult(value, "direct")
    value = parse_outer_braces(text)
    if value is not None:
        return ExtractionResult(value, "outer_braces")
    return ExtractionResult()


def balanced_spans(text: str) -> Iterator[str]:
    """Every balanced {...} span, by start position"""
    spans = []
    opened = []
    in_string = False
    escaped = False
    for index, current in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif current == "\\":
                escaped = True
            elif current == '"':
                in_string = False
            continue
        if current == "{":
            opened.append(index)
        elif current == "}" and opened:
            spans.append((opened.pop(), index))
        elif current == '"' and opened:
            # Quotes outside any object are prose
            in_string = True
    for start, end in sorted(spans):
        yield text[start:end + 1]


def parse_balanced(text: str) -> Optional[dict]:
    for span in balanced_spans(text):
        value = _loads_object(span)
        if value is not None:
            return value
    return None


def _walk_strings(obj: Any, seen: Set[int]) -> Iterator[str]:
    if isinstance(obj, str):
        yield obj
        return
    if not isinstance(obj, (dict, list, tuple)):
        return
    if id(obj) in seen:
        return
    seen.add(id(obj))
    values = obj.values() if isinstance(obj, dict) else obj
    for value in values:
        yield from _walk_strings(value, seen)


def _as_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    try:
        return json.dumps(raw, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(raw)


def _extract(raw: Any) -> ExtractionResult:
    if isinstance(raw, (str, bytes, bytearray)):
        text = _as_text(raw)
        result = _parse_text(text)
        if result.found:
            return result
        value = parse_balanced(text)
        if value is not None:
            return ExtractionResult(value, "balanced_scan")
        return ExtractionResult()

    unwrapped = unwrap_envelope(raw)
    if unwrapped is not None:
        result = _parse_text(unwrapped)
        if result.found:
            return ExtractionResult(result.value, "envelope")
        value = parse_balanced(unwrapped)
        if value is not None:
            return ExtractionResult(value, "balanced_scan")

    for candidate in _walk_strings(raw, set()):
        result = _parse_text(candidate)
        if result.found:
            return ExtractionResult(result.value, "string_walk")

    return ExtractionResult()


def extract_with_strategy(raw: Any) -> ExtractionResult:
    """Like extract_json, but reports which strategy matched."""
    try:
        result = _extract(raw)
    except Exception as e:
        logger.error(f"JSON extraction failed unexpectedly: {e}", exc_info=True)
        return ExtractionResult()
    if result.found:
        logger.debug(f"JSON extracted via {result.strategy}")
    return result


def extract_json(raw: Any) -> Optional[dict]:
    """First JSON object recoverable from `raw`, or None."""
    return extract_with_strategy(raw).value
