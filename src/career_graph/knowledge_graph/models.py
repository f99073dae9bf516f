from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..errors import ValidationError


class EntityType(str, Enum):
    """Kinds of professional entity held in the graph."""

    SKILL = "skill"
    ROLE = "role"
    ORGANIZATION = "org"
    PROJECT = "project"
    ACHIEVEMENT = "achievement"
    EDUCATION = "education"
    TECH_SKILL = "tech_skill"
    SOFT_SKILL = "soft_skill"


class RelationType(str, Enum):
    """Directed relationship kinds."""

    HAS_SKILL = "hasSkill"
    WORKED_AT = "workedAt"
    LED_TEAM = "ledTeam"
    USED_TECHNOLOGY = "usedTechnology"
    ACHIEVED = "achieved"
    RELATED_TO = "relatedTo"
    DEMONSTRATES = "demonstrates"
    REQUIRES = "requires"


class NodeSource(str, Enum):
    RESUME = "resume"
    USER_INPUT = "user_input"
    INFERRED = "inferred"
    USER_FEEDBACK = "user_feedback"


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, float(value)))


def _coerce(enum_cls: type[Enum], value: Any, what: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"unknown {what}: {value!r}") from None


def _mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _parse_ts(v: Any) -> datetime:
    if v is None:
        return utcnow()
    if isinstance(v, datetime):
        return v
    if isinstance(v, (int, float)):
        # epoch milliseconds, as exported by the browser extension
        return datetime.fromtimestamp(v / 1000.0, UTC)
    s = str(v).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"bad timestamp: {v!r}") from None


@dataclass
class NodeMetadata:
    created_at: datetime = field(default_factory=utcnow)
    source: NodeSource = NodeSource.USER_INPUT
    confidence: float = 1.0
    frequency: int = 1


@dataclass
class Node:
    """A typed, labeled entity.

    `version` is managed by the store and bumped on every upsert.
    """

    id: str
    entity_type: EntityType
    label: str
    description: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.entity_type.value,
            "label": self.label,
            "description": self.description,
            "properties": dict(self.properties),
            "metadata": {
                "createdAt": self.metadata.created_at.isoformat(),
                "source": self.metadata.source.value,
                "confidence": self.metadata.confidence,
                "frequency": self.metadata.frequency,
            },
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        data = _mapping(data, "node")
        if not data.get("id"):
            raise ValidationError("node is missing an id")
        meta = _mapping(data.get("metadata") or {}, "node metadata")
        try:
            return cls(
                id=str(data["id"]),
                entity_type=_coerce(EntityType, data.get("type"), "entity type"),
                label=str(data.get("label") or ""),
                description=data.get("description") or None,
                properties=dict(_mapping(data.get("properties") or {}, "node properties")),
                metadata=NodeMetadata(
                    created_at=_parse_ts(meta.get("createdAt")),
                    source=_coerce(NodeSource, meta.get("source", "user_input"), "node source"),
                    confidence=float(meta.get("confidence", 1.0)),
                    frequency=int(meta.get("frequency", 1)),
                ),
                version=int(data.get("version", 0)),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"malformed node {data['id']!r}: {e}") from None


@dataclass
class EdgeProperties:
    weight: float = 1.0  # relationship strength
    context: str | None = None


@dataclass
class EdgeMetadata:
    inferred: bool = False  # machine-derived vs user-asserted
    confidence: float = 1.0
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Edge:
    """A directed, weighted relationship between two nodes."""

    id: str
    source: str
    target: str
    relation_type: RelationType
    properties: EdgeProperties = field(default_factory=EdgeProperties)
    metadata: EdgeMetadata = field(default_factory=EdgeMetadata)
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.relation_type.value,
            "properties": {"weight": self.properties.weight, "context": self.properties.context},
            "metadata": {
                "inferred": self.metadata.inferred,
                "confidence": self.metadata.confidence,
                "updatedAt": self.metadata.updated_at.isoformat(),
            },
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        data = _mapping(data, "edge")
        for key in ("id", "source", "target"):
            if not data.get(key):
                raise ValidationError(f"edge is missing {key!r}")
        props = _mapping(data.get("properties") or {}, "edge properties")
        meta = _mapping(data.get("metadata") or {}, "edge metadata")
        inferred = bool(meta.get("inferred", False))
        try:
            return cls(
                id=str(data["id"]),
                source=str(data["source"]),
                target=str(data["target"]),
                relation_type=_coerce(RelationType, data.get("type"), "relation type"),
                properties=EdgeProperties(
                    weight=float(props.get("weight", 1.0)),
                    context=props.get("context") or None,
                ),
                metadata=EdgeMetadata(
                    inferred=inferred,
                    confidence=float(meta.get("confidence", 0.7 if inferred else 1.0)),
                    updated_at=_parse_ts(meta.get("updatedAt")),
                ),
                version=int(data.get("version", 0)),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"malformed edge {data['id']!r}: {e}") from None


def make_node(
    entity_type: EntityType | str,
    label: str,
    properties: dict[str, Any] | None = None,
    source: NodeSource | str = NodeSource.USER_INPUT,
    *,
    description: str | None = None,
) -> Node:
    """Build a fresh node; user-entered entities start fully trusted."""
    source = _coerce(NodeSource, source, "node source")
    return Node(
        id=new_id(),
        entity_type=_coerce(EntityType, entity_type, "entity type"),
        label=label,
        description=description,
        properties=dict(properties or {}),
        metadata=NodeMetadata(
            source=source,
            confidence=1.0 if source is NodeSource.USER_INPUT else 0.8,
        ),
    )


def make_edge(
    source: str,
    target: str,
    relation_type: RelationType | str,
    properties: EdgeProperties | None = None,
    inferred: bool = False,
) -> Edge:
    return Edge(
        id=new_id(),
        source=source,
        target=target,
        relation_type=_coerce(RelationType, relation_type, "relation type"),
        properties=properties or EdgeProperties(),
        metadata=EdgeMetadata(inferred=inferred, confidence=0.7 if inferred else 1.0),
    )


def coerce_entity_type(value: Any) -> EntityType:
    return _coerce(EntityType, value, "entity type")


def coerce_relation_type(value: Any) -> RelationType:
    return _coerce(RelationType, value, "relation type")
