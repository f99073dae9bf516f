from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Protocol

from .models import Edge, EntityType, Node, RelationType


@dataclass(frozen=True, slots=True)
class StoreStats:
    node_count: int
    edge_count: int


class StoreTransaction(Protocol):
    """Writes and reads bound to one open store transaction."""

    db_path: str

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> Any: ...

    def get_node(self, node_id: str) -> Node | None: ...

    def search_label(self, substring: str) -> list[Node]: ...

    def upsert_node(self, node: Node, *, expected_version: int | None = None) -> Node: ...

    def upsert_edge(self, edge: Edge, *, expected_version: int | None = None) -> Edge: ...


class EntityStore(Protocol):
    """Keyed node/edge storage with type, endpoint and label indices."""

    def upsert_node(self, node: Node, *, expected_version: int | None = None) -> Node: ...

    def get_node(self, node_id: str) -> Node | None: ...

    def nodes_by_type(self, entity_type: EntityType | str) -> list[Node]: ...

    def all_nodes(self) -> list[Node]: ...

    def search_label(self, substring: str) -> list[Node]: ...

    def delete_node(self, node_id: str, *, cascade: bool = False) -> bool: ...

    def upsert_edge(self, edge: Edge, *, expected_version: int | None = None) -> Edge: ...

    def get_edge(self, edge_id: str) -> Edge | None: ...

    def edges_from(self, source_id: str) -> list[Edge]: ...

    def edges_to(self, target_id: str) -> list[Edge]: ...

    def edges_by_type(self, relation_type: RelationType | str) -> list[Edge]: ...

    def all_edges(self) -> list[Edge]: ...

    def delete_edge(self, edge_id: str) -> bool: ...

    def upsert(self, *, nodes: list[Node], edges: list[Edge]) -> None: ...

    def statistics(self) -> StoreStats: ...

    def clear(self) -> None: ...

    def full_context(self) -> dict[str, Any]: ...

    def locked(self) -> AbstractContextManager[None]: ...

    def transaction(self) -> AbstractContextManager[StoreTransaction]: ...
