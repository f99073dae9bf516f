from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Verdict(str, Enum):
    CORRECT = "correct"
    PARTIALLY_CORRECT = "partially_correct"
    INCORRECT = "incorrect"
    IGNORED = "ignored"


class VerdictReport(BaseModel):
    """A caller's judgment on a past suggestion, before it is recorded."""

    field_id: str = ""
    source_node_id: str = ""
    original_suggestion: str = ""
    user_edit: str = ""
    verdict: Verdict = Verdict.IGNORED
    affected_node_ids: list[str] = Field(default_factory=list)
    form_url: str = ""
    notes: str = ""


@dataclass(frozen=True, slots=True)
class FeedbackRecord:
    """Immutable ledger entry."""

    id: str
    field_id: str
    source_node_id: str
    original_suggestion: str
    user_edit: str
    verdict: Verdict
    affected_node_ids: tuple[str, ...]
    timestamp: datetime
    form_url: str = ""
    notes: str = ""

    def touches(self, node_id: str) -> bool:
        return self.source_node_id == node_id or node_id in self.affected_node_ids

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fieldId": self.field_id,
            "sourceNodeId": self.source_node_id,
            "originalSuggestion": self.original_suggestion,
            "userEdit": self.user_edit,
            "feedback": self.verdict.value,
            "affectedNodeIds": list(self.affected_node_ids),
            "timestamp": self.timestamp.isoformat(),
            "formUrl": self.form_url,
            "notes": self.notes,
        }


@dataclass(slots=True)
class FieldStats:
    correct: int = 0
    incorrect: int = 0
    total: int = 0


@dataclass(slots=True)
class FeedbackStats:
    total: int = 0
    correct: int = 0
    partially_correct: int = 0
    incorrect: int = 0
    ignored: int = 0
    average_edit_distance: float = 0.0
    by_field: dict[str, FieldStats] = field(default_factory=dict)


@dataclass(slots=True)
class NodeInsight:
    node_id: str
    confidence: float
    accuracy: float | None
    total_uses: int = 0
    correct_uses: int = 0
    partial_uses: int = 0
    incorrect_uses: int = 0
    recommendations: list[str] = field(default_factory=list)
