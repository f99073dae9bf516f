from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..db import GraphDB
from ..errors import ConflictError, ValidationError
from ..settings import CareerGraphSettings, settings
from .models import (
    Edge,
    EdgeMetadata,
    EdgeProperties,
    EntityType,
    Node,
    NodeMetadata,
    NodeSource,
    RelationType,
    clamp,
    coerce_entity_type,
    coerce_relation_type,
    utcnow,
)
from .store import StoreStats

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SQLiteStoreConfig:
    path: str
    # reject edges whose endpoints are not stored yet
    require_endpoints: bool = False


def _node_from_row(row: sqlite3.Row) -> Node:
    return Node(
        id=row["id"],
        entity_type=EntityType(row["entity_type"]),
        label=row["label"],
        description=row["description"],
        properties=json.loads(row["properties_json"] or "{}"),
        metadata=NodeMetadata(
            created_at=datetime.fromisoformat(row["created_at"]),
            source=NodeSource(row["source"]),
            confidence=float(row["confidence"]),
            frequency=int(row["frequency"]),
        ),
        version=int(row["version"]),
    )


def _edge_from_row(row: sqlite3.Row) -> Edge:
    return Edge(
        id=row["id"],
        source=row["source"],
        target=row["target"],
        relation_type=RelationType(row["relation_type"]),
        properties=EdgeProperties(weight=float(row["weight"]), context=row["context"]),
        metadata=EdgeMetadata(
            inferred=bool(row["inferred"]),
            confidence=float(row["confidence"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        ),
        version=int(row["version"]),
    )


class SQLiteEntityStore:
    """SQLite-backed entity store.

    Writes are serialized by a re-entrant lock and each one is a single
    transaction, so the primary row and every secondary index change together.
    Readers open their own connection and see the last committed state.
    """

    def __init__(self, cfg: SQLiteStoreConfig):
        self.cfg = cfg
        self._db = GraphDB(cfg.path)
        self._lock = threading.RLock()
        self.ensure_schema()

    @classmethod
    def from_settings(cls, s: CareerGraphSettings | None = None) -> SQLiteEntityStore:
        s = s or settings
        return cls(SQLiteStoreConfig(path=s.db_path, require_endpoints=s.require_edge_endpoints))

    @property
    def db(self) -> GraphDB:
        return self._db

    def ensure_schema(self) -> None:
        self._db.init()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the write lock across a read-modify-write sequence."""
        with self._lock:
            yield

    @contextmanager
    def transaction(self) -> Iterator[SQLiteTransaction]:
        """Group several writes; all of them commit or none do."""
        with self._lock, self._db.transaction() as con:
            yield SQLiteTransaction(self, con)

    # ---- nodes ----

    def upsert_node(self, node: Node, *, expected_version: int | None = None) -> Node:
        with self._lock, self._db.transaction() as con:
            stored = self._write_node(con, node, expected_version)
        logger.debug(f"Upserted node {stored.id} ({stored.entity_type.value}) v{stored.version}")
        return stored

    def _write_node(
        self, con: sqlite3.Connection, node: Node, expected_version: int | None
    ) -> Node:
        entity_type = coerce_entity_type(node.entity_type)
        label = (node.label or "").strip()
        if not node.id:
            raise ValidationError("node id must not be empty")
        if not label:
            raise ValidationError(f"node {node.id} has an empty label")

        row = con.execute("SELECT version FROM nodes WHERE id=?", (node.id,)).fetchone()
        current = int(row["version"]) if row else 0
        if expected_version is not None and expected_version != current:
            raise ConflictError(
                f"node {node.id} is at version {current}, expected {expected_version}"
            )

        stored = replace(
            node,
            entity_type=entity_type,
            label=label,
            metadata=replace(
                node.metadata,
                confidence=clamp(node.metadata.confidence),
                frequency=max(1, int(node.metadata.frequency)),
            ),
            version=current + 1,
        )
        try:
            properties_json = json.dumps(stored.properties, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"node {node.id} has unserializable properties: {e}") from None
        con.execute(
            """
            INSERT OR REPLACE INTO nodes(
              id, entity_type, label, label_lc, description, properties_json,
              created_at, source, confidence, frequency, version
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                stored.id,
                stored.entity_type.value,
                stored.label,
                stored.label.lower(),
                stored.description,
                properties_json,
                stored.metadata.created_at.isoformat(),
                stored.metadata.source.value,
                stored.metadata.confidence,
                stored.metadata.frequency,
                stored.version,
            ),
        )
        return stored

    def get_node(self, node_id: str) -> Node | None:
        with self._db.reader() as con:
            row = con.execute("SELECT * FROM nodes WHERE id=?", (node_id,)).fetchone()
        return _node_from_row(row) if row else None

    def nodes_by_type(self, entity_type: EntityType | str) -> list[Node]:
        entity_type = coerce_entity_type(entity_type)
        return self._nodes("SELECT * FROM nodes WHERE entity_type=? ORDER BY rowid", (entity_type.value,))

    def all_nodes(self) -> list[Node]:
        return self._nodes("SELECT * FROM nodes ORDER BY rowid", ())

    def search_label(self, substring: str) -> list[Node]:
        """Case-insensitive substring match on the lowercase label column."""
        return self._nodes(
            "SELECT * FROM nodes WHERE instr(label_lc, ?) > 0 ORDER BY rowid",
            ((substring or "").lower(),),
        )

    def _nodes(self, q: str, params: tuple[Any, ...]) -> list[Node]:
        with self._db.reader() as con:
            rows = con.execute(q, params).fetchall()
        return [_node_from_row(r) for r in rows]

    def delete_node(self, node_id: str, *, cascade: bool = False) -> bool:
        with self._lock, self._db.transaction() as con:
            cur = con.execute("DELETE FROM nodes WHERE id=?", (node_id,))
            removed = cur.rowcount > 0
            if cascade:
                edges = con.execute(
                    "DELETE FROM edges WHERE source=? OR target=?", (node_id, node_id)
                ).rowcount
                if edges:
                    logger.info(f"Cascade removed {edges} edge(s) of node {node_id}")
        return removed

    # ---- edges ----

    def upsert_edge(self, edge: Edge, *, expected_version: int | None = None) -> Edge:
        with self._lock, self._db.transaction() as con:
            stored = self._write_edge(con, edge, expected_version)
        logger.debug(f"Upserted edge {stored.id} {stored.source}-[{stored.relation_type.value}]->{stored.target}")
        return stored

    def _write_edge(
        self, con: sqlite3.Connection, edge: Edge, expected_version: int | None
    ) -> Edge:
        relation_type = coerce_relation_type(edge.relation_type)
        if not edge.id:
            raise ValidationError("edge id must not be empty")
        if not edge.source or not edge.target:
            raise ValidationError(f"edge {edge.id} needs both a source and a target")
        if self.cfg.require_endpoints:
            for end in (edge.source, edge.target):
                if con.execute("SELECT 1 FROM nodes WHERE id=?", (end,)).fetchone() is None:
                    raise ValidationError(f"edge {edge.id} references missing node {end}")

        row = con.execute("SELECT version FROM edges WHERE id=?", (edge.id,)).fetchone()
        current = int(row["version"]) if row else 0
        if expected_version is not None and expected_version != current:
            raise ConflictError(
                f"edge {edge.id} is at version {current}, expected {expected_version}"
            )

        stored = replace(
            edge,
            relation_type=relation_type,
            properties=replace(edge.properties, weight=clamp(edge.properties.weight)),
            metadata=replace(edge.metadata, confidence=clamp(edge.metadata.confidence)),
            version=current + 1,
        )
        con.execute(
            """
            INSERT OR REPLACE INTO edges(
              id, source, target, relation_type, weight, context,
              inferred, confidence, updated_at, version
            ) VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            (
                stored.id,
                stored.source,
                stored.target,
                stored.relation_type.value,
                stored.properties.weight,
                stored.properties.context,
                int(stored.metadata.inferred),
                stored.metadata.confidence,
                stored.metadata.updated_at.isoformat(),
                stored.version,
            ),
        )
        return stored

    def get_edge(self, edge_id: str) -> Edge | None:
        with self._db.reader() as con:
            row = con.execute("SELECT * FROM edges WHERE id=?", (edge_id,)).fetchone()
        return _edge_from_row(row) if row else None

    def edges_from(self, source_id: str) -> list[Edge]:
        return self._edges("SELECT * FROM edges WHERE source=? ORDER BY rowid", (source_id,))

    def edges_to(self, target_id: str) -> list[Edge]:
        return self._edges("SELECT * FROM edges WHERE target=? ORDER BY rowid", (target_id,))

    def edges_by_type(self, relation_type: RelationType | str) -> list[Edge]:
        relation_type = coerce_relation_type(relation_type)
        return self._edges(
            "SELECT * FROM edges WHERE relation_type=? ORDER BY rowid", (relation_type.value,)
        )

    def all_edges(self) -> list[Edge]:
        return self._edges("SELECT * FROM edges ORDER BY rowid", ())

    def _edges(self, q: str, params: tuple[Any, ...]) -> list[Edge]:
        with self._db.reader() as con:
            rows = con.execute(q, params).fetchall()
        return [_edge_from_row(r) for r in rows]

    def delete_edge(self, edge_id: str) -> bool:
        with self._lock, self._db.transaction() as con:
            return con.execute("DELETE FROM edges WHERE id=?", (edge_id,)).rowcount > 0

    # ---- bulk ----

    def upsert(self, *, nodes: list[Node], edges: list[Edge]) -> None:
        """Write a batch of nodes then edges in one transaction."""
        if not nodes and not edges:
            return
        with self._lock, self._db.transaction() as con:
            for n in nodes:
                self._write_node(con, n, None)
            for e in edges:
                self._write_edge(con, e, None)
        logger.info(f"Upserted {len(nodes)} node(s), {len(edges)} edge(s)")

    def statistics(self) -> StoreStats:
        with self._db.reader() as con:
            nodes = con.execute("SELECT COUNT(*) FROM nodes").fetchone()[0]
            edges = con.execute("SELECT COUNT(*) FROM edges").fetchone()[0]
        return StoreStats(node_count=int(nodes), edge_count=int(edges))

    def clear(self) -> None:
        with self._lock, self._db.transaction() as con:
            con.execute("DELETE FROM nodes")
            con.execute("DELETE FROM edges")
        logger.info("Cleared graph store")

    def full_context(self) -> dict[str, Any]:
        """Whole graph as plain dicts, read from a single snapshot."""
        with self._db.reader() as con:
            con.execute("BEGIN")
            node_rows = con.execute("SELECT * FROM nodes ORDER BY rowid").fetchall()
            edge_rows = con.execute("SELECT * FROM edges ORDER BY rowid").fetchall()
        return {
            "nodes": [_node_from_row(r).to_dict() for r in node_rows],
            "edges": [_edge_from_row(r).to_dict() for r in edge_rows],
            "timestamp": utcnow().isoformat(),
        }


class SQLiteTransaction:
    """Store operations bound to one open connection.

    Reads see the transaction's own uncommitted writes.
    """

    def __init__(self, store: SQLiteEntityStore, con: sqlite3.Connection):
        self._store = store
        self._con = con
        self.db_path = store.db.path

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        return self._con.execute(sql, params)

    def get_node(self, node_id: str) -> Node | None:
        row = self._con.execute("SELECT * FROM nodes WHERE id=?", (node_id,)).fetchone()
        return _node_from_row(row) if row else None

    def search_label(self, substring: str) -> list[Node]:
        rows = self._con.execute(
            "SELECT * FROM nodes WHERE instr(label_lc, ?) > 0 ORDER BY rowid",
            ((substring or "").lower(),),
        ).fetchall()
        return [_node_from_row(r) for r in rows]

    def upsert_node(self, node: Node, *, expected_version: int | None = None) -> Node:
        return self._store._write_node(self._con, node, expected_version)

    def upsert_edge(self, edge: Edge, *, expected_version: int | None = None) -> Edge:
        return self._store._write_edge(self._con, edge, expected_version)
