from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime

from ..db import GraphDB
from ..errors import StorageError
from ..knowledge_graph.models import utcnow
from ..knowledge_graph.similarity import levenshtein
from ..knowledge_graph.sqlite_store import SQLiteEntityStore
from ..knowledge_graph.store import EntityStore, StoreTransaction
from .models import FeedbackRecord, FeedbackStats, FieldStats, NodeInsight, Verdict, VerdictReport

logger = logging.getLogger(__name__)


def _record_from_row(row: sqlite3.Row) -> FeedbackRecord:
    return FeedbackRecord(
        id=row["id"],
        field_id=row["field_id"],
        source_node_id=row["source_node_id"],
        original_suggestion=row["original_suggestion"],
        user_edit=row["user_edit"],
        verdict=Verdict(row["verdict"]),
        affected_node_ids=tuple(json.loads(row["affected_node_ids_json"] or "[]")),
        timestamp=datetime.fromisoformat(row["timestamp"]),
        form_url=row["form_url"],
        notes=row["notes"],
    )


class FeedbackLedger:
    """Append-only history of verdicts on past suggestions.

    Shares the store's SQLite file. Records are never updated; processing
    marks live in a side table.
    """

    def __init__(self, store: EntityStore, db: GraphDB):
        self.store = store
        self._db = db
        self._db.init()

    @classmethod
    def for_store(cls, store: SQLiteEntityStore) -> FeedbackLedger:
        """Ledger living in the same database as a SQLiteEntityStore."""
        return cls(store, store.db)

    def record_verdict(self, report: VerdictReport) -> FeedbackRecord:
        record = FeedbackRecord(
            id=f"fb-{uuid.uuid4().hex}",
            field_id=report.field_id,
            source_node_id=report.source_node_id,
            original_suggestion=report.original_suggestion,
            user_edit=report.user_edit,
            verdict=report.verdict,
            affected_node_ids=tuple(report.affected_node_ids),
            timestamp=utcnow(),
            form_url=report.form_url,
            notes=report.notes,
        )
        if record.source_node_id and self.store.get_node(record.source_node_id) is None:
            logger.warning(f"Feedback {record.id} references unknown node {record.source_node_id}")

        with self._db.transaction() as con:
            con.execute(
                """
                INSERT INTO feedback(
                  id, field_id, source_node_id, original_suggestion, user_edit,
                  verdict, affected_node_ids_json, form_url, notes, timestamp
                ) VALUES (?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    record.id,
                    record.field_id,
                    record.source_node_id,
                    record.original_suggestion,
                    record.user_edit,
                    record.verdict.value,
                    json.dumps(list(record.affected_node_ids)),
                    record.form_url,
                    record.notes,
                    record.timestamp.isoformat(),
                ),
            )
        logger.info(f"Recorded feedback {record.id} ({record.verdict.value}) for field {record.field_id!r}")
        return record

    def get(self, record_id: str) -> FeedbackRecord | None:
        with self._db.reader() as con:
            row = con.execute("SELECT * FROM feedback WHERE id=?", (record_id,)).fetchone()
        return _record_from_row(row) if row else None

    def history(self) -> list[FeedbackRecord]:
        with self._db.reader() as con:
            rows = con.execute("SELECT * FROM feedback ORDER BY seq").fetchall()
        return [_record_from_row(r) for r in rows]

    def for_node(self, node_id: str) -> list[FeedbackRecord]:
        return [r for r in self.history() if r.touches(node_id)]

    def clear(self) -> None:
        with self._db.transaction() as con:
            con.execute("DELETE FROM feedback")
            con.execute("DELETE FROM feedback_processed")
        logger.info("Cleared feedback history")

    def mark_processed(self, record_id: str, tx: StoreTransaction | None = None) -> None:
        """Mark a record processed, inside `tx` when the graph writes share it."""
        params = (record_id, utcnow().isoformat())
        sql = "INSERT OR REPLACE INTO feedback_processed(record_id, processed_at) VALUES (?,?)"
        if tx is None:
            with self._db.transaction() as con:
                con.execute(sql, params)
            return
        if tx.db_path != self._db.path:
            raise StorageError(f"transaction on {tx.db_path} cannot mark feedback in {self._db.path}")
        tx.execute(sql, params)

    def is_processed(self, record_id: str) -> bool:
        with self._db.reader() as con:
            row = con.execute(
                "SELECT 1 FROM feedback_processed WHERE record_id=?", (record_id,)
            ).fetchone()
        return bool(row)

    def statistics(self) -> FeedbackStats:
        stats = FeedbackStats()
        total_distance = 0
        edits = 0

        for r in self.history():
            stats.total += 1
            if r.verdict is Verdict.CORRECT:
                stats.correct += 1
            elif r.verdict is Verdict.PARTIALLY_CORRECT:
                stats.partially_correct += 1
            elif r.verdict is Verdict.INCORRECT:
                stats.incorrect += 1
            else:
                stats.ignored += 1

            if r.user_edit != r.original_suggestion:
                total_distance += levenshtein(r.original_suggestion, r.user_edit)
                edits += 1

            fs = stats.by_field.setdefault(r.field_id, FieldStats())
            fs.total += 1
            if r.verdict is Verdict.CORRECT:
                fs.correct += 1
            elif r.verdict is Verdict.INCORRECT:
                fs.incorrect += 1

        if edits:
            stats.average_edit_distance = total_distance / edits
        return stats

    def node_insight(self, node_id: str) -> NodeInsight:
        """Feedback-derived confidence for one node.

        Confidence is damped by min(uses / 10, 1), so a lightly used node
        stays near 0.5 even when every verdict was positive.
        """
        records = self.for_node(node_id)
        if not records:
            return NodeInsight(
                node_id=node_id,
                confidence=0.5,
                accuracy=None,
                recommendations=["Needs more data to make recommendations"],
            )

        correct = sum(1 for r in records if r.verdict is Verdict.CORRECT)
        partial = sum(1 for r in records if r.verdict is Verdict.PARTIALLY_CORRECT)
        incorrect = sum(1 for r in records if r.verdict is Verdict.INCORRECT)
        rated = max(correct + partial + incorrect, 1)

        weighted = (correct + 0.5 * partial) / rated
        use_factor = min(len(records) / 10, 1.0)
        confidence = min(0.5 + 0.5 * weighted * use_factor, 1.0)

        recs: list[str] = []
        if incorrect > correct:
            recs.append("Warning: More incorrect uses than correct. Consider reviewing entity definition.")
        if len(records) < 3:
            recs.append("Limited feedback data. Entity needs more usage to improve.")
        if correct == len(records):
            recs.append("Excellent! This entity is consistently correct.")

        return NodeInsight(
            node_id=node_id,
            confidence=confidence,
            accuracy=correct / rated,
            total_uses=len(records),
            correct_uses=correct,
            partial_uses=partial,
            incorrect_uses=incorrect,
            recommendations=recs or ["Performing as expected"],
        )
