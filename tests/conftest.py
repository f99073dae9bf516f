from __future__ import annotations

import pytest

from career_graph.feedback import FeedbackLedger, GraphLearner
from career_graph.knowledge_graph import GraphQueryEngine, SQLiteEntityStore, SQLiteStoreConfig
from career_graph.knowledge_graph.models import (
    Edge,
    EdgeMetadata,
    EntityType,
    Node,
    NodeMetadata,
    RelationType,
)
from career_graph.matching import RelevanceMatcher


@pytest.fixture
def store(tmp_path):
    return SQLiteEntityStore(SQLiteStoreConfig(path=str(tmp_path / "graph.db")))


@pytest.fixture
def engine(store):
    return GraphQueryEngine(store)


@pytest.fixture
def matcher(store, engine):
    return RelevanceMatcher(store, engine)


@pytest.fixture
def ledger(store):
    return FeedbackLedger.for_store(store)


@pytest.fixture
def learner(store, ledger):
    return GraphLearner(store, ledger)


@pytest.fixture
def add_node(store):
    def _add(node_id, label, entity_type=EntityType.SKILL, confidence=1.0, **kw):
        node = Node(
            id=node_id,
            entity_type=entity_type,
            label=label,
            metadata=NodeMetadata(confidence=confidence),
            **kw,
        )
        return store.upsert_node(node)

    return _add


@pytest.fixture
def add_edge(store):
    def _add(edge_id, source, target, relation_type=RelationType.HAS_SKILL, confidence=1.0):
        edge = Edge(
            id=edge_id,
            source=source,
            target=target,
            relation_type=relation_type,
            metadata=EdgeMetadata(confidence=confidence),
        )
        return store.upsert_edge(edge)

    return _add
