"""Knowledge graph subsystem.

This module provides:
- Node/Edge models and the EntityStore protocol
- A SQLite-backed store with type, endpoint and label indices
- A query engine for bounded traversals and fuzzy label search
- An ingestor for pre-parsed resume entities
"""

from .models import Edge, EntityType, Node, NodeSource, RelationType, make_edge, make_node
from .pipeline import GraphIngestor
from .query_engine import GraphQueryEngine
from .sqlite_store import SQLiteEntityStore, SQLiteStoreConfig, SQLiteTransaction
from .store import EntityStore, StoreTransaction

__all__ = [
    "Edge",
    "EntityStore",
    "EntityType",
    "GraphIngestor",
    "GraphQueryEngine",
    "Node",
    "NodeSource",
    "RelationType",
    "SQLiteEntityStore",
    "SQLiteStoreConfig",
    "SQLiteTransaction",
    "StoreTransaction",
    "make_edge",
    "make_node",
]
