# models/story_models.py
"""Inbound story generation parameters."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr

# (field, minimum, maximum); string bounds are character counts
STORY_FIELD_BOUNDS: tuple[tuple[str, int | None, int | None], ...] = (
    ("n_chapters", 1, 20),
    ("story_instructions", 10, 1000),
    ("primary_characters", 2, 500),
    ("secondary_characters", None, 500),
    ("l_chapter", 100, 5000),
)


class StoryRequest(BaseModel):
    """Parameters forwarded to the story workflow.

    Only presence and JSON type are checked here; the workflow service owns
    the semantics of each field.
    """

    model_config = ConfigDict(extra="ignore")

    n_chapters: StrictInt
    story_instructions: StrictStr
    primary_characters: StrictStr
    secondary_characters: StrictStr
    l_chapter: StrictInt

    def to_workflow_payload(self) -> dict[str, Any]:
        """Return the body expected by the workflow endpoint."""
        return {
            "n_chapters": self.n_chapters,
            "story_instructions": self.story_instructions,
            "primary_characters": self.primary_characters,
            "secondary_characters": self.secondary_characters,
            "l_chapter": self.l_chapter,
        }

    def log_summary(self, max_chars: int = 120) -> dict[str, Any]:
        """Compact view of the request for log lines."""
        summary: dict[str, Any] = {}
        for key, value in self.to_workflow_payload().items():
            if isinstance(value, str) and len(value) > max_chars:
                value = value[:max_chars] + "..."
            summary[key] = value
        return summary


def validate_story_request(request: StoryRequest) -> list[str]:
    """Return the list of bound violations for ``request``.

    An empty list means the request is acceptable.
    """
    issues: list[str] = []
    for field_name, minimum, maximum in STORY_FIELD_BOUNDS:
        value = getattr(request, field_name)
        if isinstance(value, str):
            measured = len(value.strip())
            unit = " characters"
        else:
            measured = value
            unit = ""
        if minimum is not None and measured < minimum:
            issues.append(f"{field_name} must be at least {minimum}{unit}")
        elif maximum is not None and measured > maximum:
            issues.append(f"{field_name} must be at most {maximum}{unit}")
    return issues
