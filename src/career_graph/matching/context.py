from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pydantic
from pydantic import BaseModel, Field

from ..errors import ValidationError
from ..knowledge_graph.models import EntityType

# keywords searched for when an analyzer reports one of these intents
INTENT_KEYWORDS: dict[str, list[str]] = {
    "professional_narrative": ["project", "leadership", "achievement", "challenge", "solution"],
    "professional_experience": ["role", "company", "skill", "achievement"],
    "professional_summary": ["role", "expert", "skill", "achievement"],
    "education": ["degree", "university", "institution", "major"],
    "skills": ["skill", "technology", "expertise"],
    "professional_title": ["role", "title", "position"],
}

DEFAULT_CONTEXT_WEIGHT = 0.7


def intent_keywords(intent: str | None) -> list[str]:
    return list(INTENT_KEYWORDS.get(intent or "", []))


class RequestContext(BaseModel):
    """Normalized request context handed over by the context analyzer."""

    entity_type_candidates: list[EntityType] = Field(default_factory=list)
    intent_keywords: list[str] = Field(default_factory=list)
    context_weight: float = Field(default=DEFAULT_CONTEXT_WEIGHT, ge=0.0, le=1.0)
    intent: str | None = None
    # keywords derived from neighbouring fields; enables the sibling strategy
    sibling_keywords: list[str] = Field(default_factory=list)

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> RequestContext:
        try:
            return cls.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid request context: {e}") from e

    @classmethod
    def from_intent(
        cls,
        intent: str,
        entity_types: Iterable[EntityType | str] = (),
        *,
        context_weight: float = DEFAULT_CONTEXT_WEIGHT,
        sibling_intents: Iterable[str] = (),
    ) -> RequestContext:
        siblings: list[str] = []
        for s in sibling_intents:
            siblings.extend(intent_keywords(s))
        return cls.parse(
            {
                "entity_type_candidates": list(entity_types),
                "intent_keywords": intent_keywords(intent),
                "context_weight": context_weight,
                "intent": intent,
                "sibling_keywords": siblings,
            }
        )
