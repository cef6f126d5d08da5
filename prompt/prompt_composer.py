"""
Deterministic prompt composition for story generation

The prompt has four sections in a fixed order (INSTRUCTIONS, CONTEXT, SCHEMA,
PAYLOAD) and never exceeds MAX_PROMPT_LENGTH characters. Free-form additional
instructions are the only part that is budgeted; when they are cut the line
carries TRUNCATION_NOTE.
"""

import math
from typing import Any, Dict, List, Mapping

from utils.errors import PromptCompositionError

MAX_PROMPT_LENGTH = 6000
ADDITIONAL_INSTRUCTIONS_CAP = 1000
SAFETY_MARGIN = 200
TRUNCATION_NOTE = " (truncated for length budgeting)"
CHARACTER_SEPARATOR = " \u2014 "

SECTION_HEADERS = ["## INSTRUCTIONS", "## CONTEXT", "## SCHEMA", "## PAYLOAD"]

TYPE_GUIDANCE: Dict[str, str] = {
    "short-story": "- Target length: up to 2000 words. Focus on narrative arc, character development, and a satisfying ending.",
    "movie-summary": "- Provide an outline suitable for screenwriting: logline, acts, key beats, stakes, and resolution.",
    "tv-commercial": "- Provide a sequence of brief shots and actions that demonstrate the product benefits clearly within 30 to 60 seconds.",
}

INSTRUCTIONS = [
    "You are an expert story generation assistant. Follow all constraints precisely and do not add extra commentary.",
    "Always produce coherent, high-quality writing appropriate to the requested story type slug.",
]

SAFETY_NOTE = "- Keep content safe and broadly appropriate; avoid hate speech or disallowed content; avoid excessive graphic violence."

SCHEMA = [
    "Reply ONLY with JSON matching this schema (no markdown fences, no extra text):",
    "{",
    '  "title": string,',
    '  "description": string | null, // optional short synopsis',
    '  "content": string, // the main body of the story',
    '  "story_type": string, // slug: short-story | movie-summary | tv-commercial',
    '  "genre": string | null, // optional',
    '  "image_url": string | null // optional',
    "}",
]


def _field(payload: Any, name: str, default: Any = None) -> Any:
    if isinstance(payload, Mapping):
        value = payload.get(name, default)
    else:
        value = getattr(payload, name, default)
    return default if value is None else value


def _slug(value: Any) -> str:
    # Enum members render as their slug, never their label
    return str(getattr(value, "value", value))


def _optional_text(value: Any) -> str:
    if value is None or value == "":
        return "none"
    return str(value)


def _format_creativity(value: Any) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0"
    if not math.isfinite(number):
        return "0"
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _append_list(lines: List[str], header: str, items: List[Any]) -> None:
    lines.append(header)
    if not items:
        lines.append("- none")
        return
    for item in items:
        lines.append(f"- {item}")


def _append_characters(lines: List[str], characters: List[Any]) -> None:
    lines.append("Characters:")
    if not characters:
        lines.append("- none")
        return
    for character in characters:
        name = _field(character, "name", "")
        role = _slug(_field(character, "role", ""))
        description = _field(character, "description", "")
        lines.append(f"- {name}{CHARACTER_SEPARATOR}{role}{CHARACTER_SEPARATOR}{description}")


def _image_url(payload: Any) -> str:
    image = _field(payload, "image")
    if not image:
        return ""
    if _field(image, "mode", "url") != "url":
        return ""
    return str(_field(image, "url", ""))


def _budget_instructions(prefix_length: int, raw: str):
    available = max(0, MAX_PROMPT_LENGTH - prefix_length - SAFETY_MARGIN)
    cap = min(ADDITIONAL_INSTRUCTIONS_CAP, available)
    if len(raw) > cap:
        return raw[:cap], True
    return raw, False


def _trim_tail(out: str) -> str:
    # The result always ends with exactly one TRUNCATION_NOTE
    head, sep, tail = out.rpartition("\n")
    room = MAX_PROMPT_LENGTH - len(head) - len(sep) - len(TRUNCATION_NOTE)
    if not sep or room <= 0:
        return out[:MAX_PROMPT_LENGTH - len(TRUNCATION_NOTE)] + TRUNCATION_NOTE

    if tail.endswith(TRUNCATION_NOTE):
        tail = tail[:-len(TRUNCATION_NOTE)]
    return head + sep + tail[:room] + TRUNCATION_NOTE


def _compose(payload: Any) -> str:
    story_type = _slug(_field(payload, "story_type", ""))

    lines: List[str] = [SECTION_HEADERS[0], *INSTRUCTIONS, ""]

    lines.append(SECTION_HEADERS[1])
    lines.append(f"- Story type (slug): {story_type}")
    lines.append(TYPE_GUIDANCE.get(story_type, TYPE_GUIDANCE["short-story"]))
    lines.append(SAFETY_NOTE)
    lines.append("")

    lines.append(SECTION_HEADERS[2])
    lines.extend(SCHEMA)
    lines.append("")

    lines.append(SECTION_HEADERS[3])
    lines.append(f"Type: {story_type}")
    lines.append(f"Title: {_field(payload, 'title', '')}")
    lines.append(f"Genre: {_optional_text(_field(payload, 'genre'))}")
    lines.append(f"Tone: {_optional_text(_field(payload, 'tone'))}")
    lines.append(f"Creativity: {_format_creativity(_field(payload, 'creativity', 0))}")

    _append_list(lines, "Themes:", list(_field(payload, "themes", [])))
    _append_list(lines, "Plot points:", list(_field(payload, "plot_points", [])))
    _append_characters(lines, list(_field(payload, "characters", [])))

    lines.append(f"Image: {_image_url(payload) or 'none'}")

    prefix = "\n".join(lines) + "\n"
    raw = str(_field(payload, "additional_instructions", "")).strip()
    text, truncated = _budget_instructions(len(prefix), raw)

    if truncated:
        lines.append(f"Additional instructions: {text}{TRUNCATION_NOTE}")
    elif text:
        lines.append(f"Additional instructions: {text}")
    else:
        lines.append("Additional instructions: none")

    out = "\n".join(lines)
    if len(out) > MAX_PROMPT_LENGTH:
        out = _trim_tail(out)
    return out


def compose_prompt(payload: Any) -> str:
    """Render a generation payload into the model prompt."""
    try:
        return _compose(payload)
    except Exception as e:
        raise PromptCompositionError(f"Failed to compose prompt: {e}") from e
