"""
Provider envelope unwrapping

Each strategy is a pure function that takes a structured model response and
returns the generated text it carries, or None when the shape does not match.
Strategies are tried in ENVELOPE_STRATEGIES order.
"""

import json
import logging
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

OUTPUT_TEXT_FIELDS = [
    "generatedText",
    "generated_text",
    "outputText",
    "output_text",
    "text",
    "output",
    "result",
    "response",
]


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def output_text_field(obj: Any) -> Optional[str]:
    """{"generatedText": "..."} and similar direct fields"""
    if not isinstance(obj, dict):
        return None
    for name in OUTPUT_TEXT_FIELDS:
        text = _non_empty_str(obj.get(name))
        if text is not None:
            return text
    return None


def gemini_candidates(obj: Any) -> Optional[str]:
    """{"candidates": [{"content": {"parts": [{"text": "..."}]}}]}"""
    if not isinstance(obj, dict):
        return None
    candidate = _first(obj.get("candidates"))
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return _non_empty_str(candidate.get("output")) or _non_empty_str(candidate.get("text"))
    texts = [part.get("text") for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
    return _non_empty_str("".join(texts))


def openai_choices(obj: Any) -> Optional[str]:
    """{"choices": [{"message": {"content": "..."}}]} or legacy {"choices": [{"text": "..."}]}"""
    if not isinstance(obj, dict):
        return None
    choice = _first(obj.get("choices"))
    if not isinstance(choice, dict):
        return None
    message = choice.get("message")
    if isinstance(message, dict):
        text = _non_empty_str(message.get("content"))
        if text is not None:
            return text
    return _non_empty_str(choice.get("text"))


def content_blocks(obj: Any) -> Optional[str]:
    """{"content": [{"type": "text", "text": "..."}]}"""
    if not isinstance(obj, dict):
        return None
    blocks = obj.get("content")
    if not isinstance(blocks, list):
        return None
    texts = [block.get("text") for block in blocks if isinstance(block, dict) and isinstance(block.get("text"), str)]
    return _non_empty_str("".join(texts))


def nested_data(obj: Any) -> Optional[str]:
    """{"data": <any of the shapes above>}"""
    if not isinstance(obj, dict) or "data" not in obj:
        return None
    inner = obj["data"]
    if isinstance(inner, str):
        return _non_empty_str(inner)
    return unwrap_envelope(inner)


def generic_string_field(obj: Any) -> Optional[str]:
    """Last structured guess: the longest top-level string value"""
    if not isinstance(obj, dict):
        return None
    strings = [value for value in obj.values() if _non_empty_str(value) is not None]
    if not strings:
        return None
    return max(strings, key=len)


ENVELOPE_STRATEGIES: List[Tuple[str, Callable[[Any], Optional[str]]]] = [
    ("output_text_field", output_text_field),
    ("gemini_candidates", gemini_candidates),
    ("openai_choices", openai_choices),
    ("content_blocks", content_blocks),
    ("nested_data", nested_data),
]


def unwrap_envelope(obj: Any) -> Optional[str]:
    """Text carried by a known provider shape, without generic guessing."""
    for name, strategy in ENVELOPE_STRATEGIES:
        try:
            text = strategy(obj)
        except Exception as e:
            logger.debug(f"envelope strategy {name} failed: {e}")
            continue
        if text is not None:
            logger.debug(f"envelope matched: {name}")
            return text
    return None


def derive_text(response: Any) -> str:
    """Single text string for a transport response of any shape."""
    if isinstance(response, str):
        return response
    if isinstance(response, (bytes, bytearray)):
        return bytes(response).decode("utf-8", errors="replace")

    text = unwrap_envelope(response)
    if text is not None:
        return text

    text = generic_string_field(response)
    if text is not None:
        return text

    try:
        return json.dumps(response, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(response)
