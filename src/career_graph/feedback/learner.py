from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Literal

from ..errors import CareerGraphError, NotFoundError
from ..knowledge_graph.models import (
    EdgeProperties,
    EntityType,
    NodeSource,
    RelationType,
    clamp,
    make_edge,
    make_node,
    utcnow,
)
from ..knowledge_graph.store import EntityStore, StoreTransaction
from .ledger import FeedbackLedger
from .models import FeedbackRecord, Verdict, VerdictReport

logger = logging.getLogger(__name__)

Priority = Literal["critical", "high", "medium", "low"]


@dataclass
class LearningPolicy:
    """Controls how verdicts move confidence."""

    deltas: dict[Verdict, float] = field(
        default_factory=lambda: {
            Verdict.CORRECT: 0.05,
            Verdict.PARTIALLY_CORRECT: 0.02,
            Verdict.INCORRECT: -0.10,
            Verdict.IGNORED: -0.02,
        }
    )
    # feedback alone never drives a node below the floor
    node_floor: float = 0.3
    node_ceiling: float = 1.0

    # entities learned from user corrections
    learned_node_confidence: float = 0.8
    learned_edge_confidence: float = 0.7

    # relationship refinement
    refine_min_correct: int = 2  # strictly more than this many
    refine_step: float = 0.05

    # pattern analysis
    min_field_attempts: int = 3
    problematic_below: float = 0.5
    accurate_from: float = 0.9
    critical_overall_below: float = 0.6


@dataclass(slots=True)
class LearningUpdate:
    nodes_updated: int = 0
    edges_updated: int = 0
    new_nodes_created: int = 0
    details: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LearningSummary:
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    nodes_updated: int = 0
    edges_updated: int = 0
    new_nodes_created: int = 0


@dataclass(slots=True)
class FieldPattern:
    field_id: str
    accuracy: float
    attempts: int
    recommendation: str | None = None


@dataclass(slots=True)
class PatternReport:
    problematic_fields: list[FieldPattern] = field(default_factory=list)
    accurate_fields: list[FieldPattern] = field(default_factory=list)
    average_accuracy: float = 0.0
    total: int = 0


@dataclass(slots=True)
class Improvement:
    kind: str
    priority: Priority
    message: str
    fields: list[str] = field(default_factory=list)


class GraphLearner:
    """Turns recorded verdicts into confidence changes on the graph.

    Processing a record twice applies its delta twice; use
    `process_all_history(skip_processed=True)` for idempotent batches.
    """

    def __init__(
        self,
        store: EntityStore,
        ledger: FeedbackLedger,
        policy: LearningPolicy | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.policy = policy or LearningPolicy()

    def process_feedback(self, record_id: str) -> LearningUpdate:
        record = self.ledger.get(record_id)
        if record is None:
            raise NotFoundError(f"feedback {record_id} not found")

        update = LearningUpdate()
        # graph changes and the processed mark commit together
        with self.store.transaction() as tx:
            self._adjust_source_node(tx, record, update)
            if record.verdict is Verdict.INCORRECT and record.user_edit.strip():
                self._learn_correction(tx, record, update)
            self.ledger.mark_processed(record.id, tx)

        if update.new_nodes_created:
            logger.info(f"Learned entity {record.user_edit.strip()!r} from feedback {record.id}")
        return update

    def _adjust_source_node(
        self, tx: StoreTransaction, record: FeedbackRecord, update: LearningUpdate
    ) -> None:
        if not record.source_node_id:
            return
        p = self.policy
        node = tx.get_node(record.source_node_id)
        if node is None:
            return
        before = node.metadata.confidence
        after = round(clamp(before + p.deltas[record.verdict], p.node_floor, p.node_ceiling), 6)
        tx.upsert_node(
            replace(
                node,
                metadata=replace(
                    node.metadata, confidence=after, frequency=node.metadata.frequency + 1
                ),
            ),
            expected_version=node.version,
        )
        update.nodes_updated += 1
        update.details.append(f"Updated confidence for {node.label}: {before:.2f} -> {after:.2f}")

    def _learn_correction(
        self, tx: StoreTransaction, record: FeedbackRecord, update: LearningUpdate
    ) -> None:
        label = record.user_edit.strip()
        p = self.policy
        if tx.search_label(label):
            return
        node = make_node(
            EntityType.SKILL,
            label,
            source=NodeSource.USER_FEEDBACK,
            description="Created from user feedback",
        )
        node.metadata.confidence = p.learned_node_confidence
        tx.upsert_node(node)
        if record.source_node_id:
            edge = make_edge(
                record.source_node_id,
                node.id,
                RelationType.HAS_SKILL,
                EdgeProperties(context="learned from feedback"),
                inferred=True,
            )
            edge.metadata.confidence = p.learned_edge_confidence
            tx.upsert_edge(edge)
        update.new_nodes_created += 1
        update.details.append(f"Created new entity: {label}")

    def process_all_history(self, *, skip_processed: bool = False) -> LearningSummary:
        summary = LearningSummary()
        for record in self.ledger.history():
            if skip_processed and self.ledger.is_processed(record.id):
                summary.skipped += 1
                continue
            try:
                result = self.process_feedback(record.id)
            except CareerGraphError as e:
                logger.error(f"Error processing feedback {record.id}: {e}")
                summary.errors += 1
                continue
            summary.processed += 1
            summary.nodes_updated += result.nodes_updated
            summary.edges_updated += result.edges_updated
            summary.new_nodes_created += result.new_nodes_created
        return summary

    def record_and_learn(self, report: VerdictReport) -> tuple[FeedbackRecord, LearningUpdate]:
        record = self.ledger.record_verdict(report)
        return record, self.process_feedback(record.id)

    def refine_relationship_weights(self) -> int:
        """Raise confidence of edges that keep leading to correct suggestions."""
        p = self.policy
        correct = [r for r in self.ledger.history() if r.verdict is Verdict.CORRECT]
        refined = 0

        for edge in self.store.all_edges():
            uses = sum(
                1 for r in correct if r.touches(edge.source) and edge.target in r.affected_node_ids
            )
            if uses <= p.refine_min_correct:
                continue
            with self.store.locked():
                current = self.store.get_edge(edge.id)
                if current is None:
                    continue
                self.store.upsert_edge(
                    replace(
                        current,
                        metadata=replace(
                            current.metadata,
                            confidence=round(min(current.metadata.confidence + p.refine_step, 1.0), 6),
                            updated_at=utcnow(),
                        ),
                    ),
                    expected_version=current.version,
                )
            refined += 1

        if refined:
            logger.info(f"Refined {refined} relationship(s)")
        return refined

    def analyze_patterns(self) -> PatternReport:
        p = self.policy
        stats = self.ledger.statistics()
        report = PatternReport(
            average_accuracy=stats.correct / max(stats.total, 1), total=stats.total
        )

        for field_id, fs in stats.by_field.items():
            if fs.total < p.min_field_attempts:
                continue
            accuracy = fs.correct / max(fs.total, 1)
            if accuracy < p.problematic_below:
                report.problematic_fields.append(
                    FieldPattern(
                        field_id,
                        accuracy,
                        fs.total,
                        recommendation="Review entity definitions for this field type",
                    )
                )
            elif accuracy >= p.accurate_from:
                report.accurate_fields.append(FieldPattern(field_id, accuracy, fs.total))
        return report

    def suggest_improvements(self) -> list[Improvement]:
        patterns = self.analyze_patterns()
        out: list[Improvement] = []

        if patterns.problematic_fields:
            out.append(
                Improvement(
                    kind="low_accuracy_fields",
                    priority="high",
                    message=(
                        f"{len(patterns.problematic_fields)} field(s) have low accuracy. "
                        "Review entity linking."
                    ),
                    fields=[f.field_id for f in patterns.problematic_fields],
                )
            )

        # an empty history has nothing to judge
        threshold = self.policy.critical_overall_below
        if patterns.total and patterns.average_accuracy < threshold:
            out.append(
                Improvement(
                    kind="overall_low_accuracy",
                    priority="critical",
                    message=(
                        f"Overall suggestion accuracy is below {threshold:.0%}. Consider adding more "
                        "resume data or refining entity extraction."
                    ),
                )
            )
        return out
