from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from ..knowledge_graph.models import Node
from ..knowledge_graph.query_engine import GraphQueryEngine
from ..knowledge_graph.store import EntityStore
from .context import RequestContext

logger = logging.getLogger(__name__)

Strategy = Literal["type_match", "intent_semantic", "sibling_context"]


@dataclass
class MatchPolicy:
    """Scores given to candidates by each strategy."""

    type_weight: float = 0.7
    keyword_weight: float = 0.8
    # indirect signal, not scaled by the context weight
    sibling_score: float = 0.6
    keyword_threshold: float = 0.5


@dataclass(slots=True)
class Match:
    node: Node
    score: float
    strategy: Strategy


@dataclass(slots=True)
class FieldRequest:
    field_id: str
    context: RequestContext
    field_type: str = "text"


@dataclass(slots=True)
class Suggestion:
    field_id: str
    suggestion: str | None
    confidence: float
    source_node: Node | None = None


class RelevanceMatcher:
    """Ranks graph entities against a request context.

    Three strategies feed a pool: every node of a candidate type, fuzzy hits
    for the intent keywords, and fuzzy hits for sibling keywords. Duplicates
    keep their best score; ties keep first-seen order.
    """

    def __init__(
        self,
        store: EntityStore,
        engine: GraphQueryEngine | None = None,
        policy: MatchPolicy | None = None,
    ):
        self.store = store
        self.engine = engine or GraphQueryEngine(store)
        self.policy = policy or MatchPolicy()

    def _candidates(self, ctx: RequestContext) -> list[Match]:
        p = self.policy
        pool: list[Match] = []

        for entity_type in ctx.entity_type_candidates:
            score = p.type_weight * ctx.context_weight
            pool.extend(Match(n, score, "type_match") for n in self.store.nodes_by_type(entity_type))

        for keyword in ctx.intent_keywords:
            score = p.keyword_weight * ctx.context_weight
            hits = self.engine.fuzzy_search(keyword, p.keyword_threshold)
            pool.extend(Match(n, score, "intent_semantic") for n in hits)

        for keyword in ctx.sibling_keywords:
            hits = self.engine.fuzzy_search(keyword, p.keyword_threshold)
            pool.extend(Match(n, p.sibling_score, "sibling_context") for n in hits)

        return pool

    def rank(self, ctx: RequestContext) -> list[Match]:
        best: dict[str, Match] = {}
        for m in self._candidates(ctx):
            prev = best.get(m.node.id)
            if prev is None or m.score > prev.score:
                best[m.node.id] = m
        # dicts keep first insertion order, and sorted() is stable
        return sorted(best.values(), key=lambda m: m.score, reverse=True)

    def find_matches(self, ctx: RequestContext, k: int = 3) -> list[Node]:
        ranked = self.rank(ctx)
        logger.debug(f"Ranked {len(ranked)} candidate(s) for intent={ctx.intent!r}")
        return [m.node for m in ranked[: max(0, k)]]

    def suggest_for_field(
        self, field_id: str, ctx: RequestContext, *, field_type: str = "text"
    ) -> Suggestion:
        matches = self.find_matches(ctx)
        if not matches:
            return Suggestion(field_id=field_id, suggestion=None, confidence=0.0)

        primary = matches[0]
        if field_type != "textarea":
            return Suggestion(field_id=field_id, suggestion=primary.label, confidence=0.85, source_node=primary)
        # long-form answers are written by the narrative generator from the source node
        return Suggestion(field_id=field_id, suggestion=None, confidence=0.75, source_node=primary)

    def suggest_for_fields(self, fields: Iterable[FieldRequest]) -> list[Suggestion]:
        """One suggestion per field, in input order."""
        return [self.suggest_for_field(f.field_id, f.context, field_type=f.field_type) for f in fields]
