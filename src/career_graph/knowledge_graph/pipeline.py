from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from ..errors import ValidationError
from .models import Edge, Node
from .store import EntityStore


@dataclass(slots=True)
class IngestStats:
    nodes: int
    edges: int
    parse_ms: float
    upsert_ms: float


class GraphIngestor:
    """Loads pre-parsed entities and relationships into the store.

    Text extraction from resumes happens upstream; this only accepts
    records already shaped as nodes and edges.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def ingest(self, *, nodes: list[Node], edges: list[Edge]) -> IngestStats:
        t0 = time.perf_counter()
        self.store.upsert(nodes=nodes, edges=edges)
        t1 = time.perf_counter()
        return IngestStats(nodes=len(nodes), edges=len(edges), parse_ms=0.0, upsert_ms=(t1 - t0) * 1000.0)

    def ingest_document(self, payload: dict[str, Any]) -> IngestStats:
        """Ingest a `{"nodes": [...], "edges": [...]}` export."""
        if not isinstance(payload, dict):
            raise ValidationError("document payload must be an object")
        t0 = time.perf_counter()
        raw_nodes = payload.get("nodes") or []
        raw_edges = payload.get("edges") or []
        if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
            raise ValidationError("document nodes and edges must be arrays")
        nodes = [Node.from_dict(d) for d in raw_nodes]
        edges = [Edge.from_dict(d) for d in raw_edges]
        t1 = time.perf_counter()
        self.store.upsert(nodes=nodes, edges=edges)
        t2 = time.perf_counter()
        return IngestStats(
            nodes=len(nodes),
            edges=len(edges),
            parse_ms=(t1 - t0) * 1000.0,
            upsert_ms=(t2 - t1) * 1000.0,
        )
