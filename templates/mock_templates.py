"""
Mock story templates for running without a model provider
Used by the mock generation transport and the mock upstream client
"""

import json
import random
import re
from typing import Any, Dict, Optional

STORY_TEMPLATES = {
    "short-story": {
        "openings": [
            "The rain had not stopped for three days when {title} finally began.",
            "Nobody in town remembered who first told the story of {title}.",
            "It started, as these things often do, with a letter that arrived too late.",
        ],
        "middles": [
            "Every door that opened led to another question, and every answer cost something.",
            "What seemed like a small favor turned into the longest week of their life.",
        ],
        "endings": [
            "In the end, the quiet was the loudest thing they had ever heard.",
            "And when morning came, the world looked exactly the same, except it wasn't.",
        ],
        "genre": "drama",
    },
    "movie-summary": {
        "openings": [
            "Logline: an unlikely hero is pulled into {title} and must choose between safety and truth.",
            "Logline: when {title} goes wrong, a reluctant team has one night to fix it.",
        ],
        "middles": [
            "Act II: alliances shift, the stakes double, and a betrayal reveals the real enemy.",
            "Act II: the plan works too well, drawing attention nobody wanted.",
        ],
        "endings": [
            "Act III: the final confrontation costs the hero what they valued most, and wins them what they needed.",
            "Act III: the truth comes out in public, and the city is never the same.",
        ],
        "genre": "thriller",
    },
    "tv-commercial": {
        "openings": [
            "Shot 1: close-up of a tired face at sunrise. Voiceover: 'Mornings are hard.'",
            "Shot 1: a crowded kitchen, everything going wrong at once.",
        ],
        "middles": [
            "Shot 2: the product appears, and the chaos slows down.",
            "Shot 2: one tap, and the problem simply isn't there anymore.",
        ],
        "endings": [
            "Shot 3: smiles, logo, tagline: '{title}. Easier than you think.'",
            "Shot 3: freeze frame, logo, tagline: '{title}. Made for real life.'",
        ],
        "genre": "commercial",
    },
}

_TYPE_LINE = re.compile(r"\bType: ([a-z-]+)")
_TITLE_LINE = re.compile(r"\bTitle: (.*?)(?:\n| Genre: |$)")


class MockStoryGenerator:
    """Template-based stand-in for the model"""

    def generate_story(self, story_type: str, title: Optional[str] = None) -> Dict[str, Any]:
        template = STORY_TEMPLATES.get(story_type, STORY_TEMPLATES["short-story"])
        title = title or "Untitled"

        paragraphs = [
            random.choice(template["openings"]),
            random.choice(template["middles"]),
            random.choice(template["endings"]),
        ]

        return {
            "title": title,
            "description": f"A {story_type} about {title}.",
            "content": "\n\n".join(p.replace("{title}", title) for p in paragraphs),
            "story_type": story_type if story_type in STORY_TEMPLATES else "short-story",
            "genre": template["genre"],
            "image_url": None,
        }

    def generate_from_prompt(self, prompt: str) -> Dict[str, Any]:
        """Read type and title from a composed prompt (raw or whitespace-collapsed)"""
        type_match = _TYPE_LINE.search(prompt or "")
        title_match = _TITLE_LINE.search(prompt or "")
        story_type = type_match.group(1).strip() if type_match else "short-story"
        title = title_match.group(1).strip() if title_match else None
        return self.generate_story(story_type, title)

    def fenced_response(self, prompt: str) -> str:
        """Model-style reply: the story JSON inside a markdown fence"""
        story = self.generate_from_prompt(prompt)
        return "```json\n" + json.dumps(story, ensure_ascii=False) + "\n```"
