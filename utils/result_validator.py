"""
Structural validation and best-effort coercion of model output
"""

import logging
from typing import Any, Optional

from models.generation_models import GenerationResult

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Generated Story"
DEFAULT_STORY_TYPE = "short-story"
OPTIONAL_FIELDS = ("genre", "description", "image_url")


def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_schema(obj: Any) -> bool:
    """True when `obj` already has the shape of a GenerationResult"""
    if not isinstance(obj, dict):
        return False
    if not _non_blank(obj.get("title")):
        return False
    if not isinstance(obj.get("content"), str) or not obj["content"]:
        return False
    if not _non_blank(obj.get("story_type")):
        return False
    for name in OPTIONAL_FIELDS:
        value = obj.get(name)
        if value is not None and not isinstance(value, str):
            return False
    return True


def to_result(obj: dict) -> GenerationResult:
    return GenerationResult(
        title=obj["title"],
        content=obj["content"],
        story_type=obj["story_type"],
        genre=obj.get("genre"),
        description=obj.get("description"),
        image_url=obj.get("image_url"),
    )


def _payload_value(payload: Any, name: str) -> Any:
    if payload is None:
        return None
    if isinstance(payload, dict):
        value = payload.get(name)
    else:
        value = getattr(payload, name, None)
    return getattr(value, "value", value)


def coerce_result(candidate: Any, payload: Any = None) -> Optional[GenerationResult]:
    """Repair a candidate that has usable content; None when there is nothing to repair"""
    if not isinstance(candidate, dict):
        return None

    content = candidate.get("content")
    if not isinstance(content, str) or not content.strip():
        return None

    title = candidate.get("title")
    if not _non_blank(title):
        title = _payload_value(payload, "title")
    if not _non_blank(title):
        title = DEFAULT_TITLE

    story_type = candidate.get("story_type")
    if not _non_blank(story_type):
        story_type = _payload_value(payload, "story_type")
    if not _non_blank(story_type):
        logger.warning(f"story_type missing from response and payload, defaulting to {DEFAULT_STORY_TYPE}")
        story_type = DEFAULT_STORY_TYPE

    optional = {}
    for name in OPTIONAL_FIELDS:
        value = candidate.get(name)
        optional[name] = value if isinstance(value, str) else None

    return GenerationResult(title=title, content=content, story_type=story_type, **optional)
