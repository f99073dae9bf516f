from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import QueryTimeoutError
from .models import Edge, EntityType, Node, RelationType, coerce_relation_type
from .similarity import similarity
from .store import EntityStore

logger = logging.getLogger(__name__)

MAX_PATH_HOPS = 5

SKILL_LINKS = (RelationType.HAS_SKILL, RelationType.USED_TECHNOLOGY)


@dataclass(slots=True)
class ResolvedEdge:
    """An edge together with the node at its far end (None if dangling)."""

    edge: Edge
    node: Node | None


@dataclass(slots=True)
class NodeContext:
    node: Node
    outgoing: list[ResolvedEdge] = field(default_factory=list)
    incoming: list[ResolvedEdge] = field(default_factory=list)


@dataclass(slots=True)
class GraphQueryEngine:
    """Traversal and search over an EntityStore.

    All traversals follow outgoing edges only and are bounded, by depth for
    BFS and path search and by the node count for fuzzy search.
    """

    store: EntityStore
    max_path_hops: int = MAX_PATH_HOPS
    search_timeout_s: float | None = None

    def bfs(self, start_id: str, max_depth: int = 3) -> dict[str, int]:
        """Map every reached node id to the depth it was first discovered at."""
        visited: dict[str, int] = {start_id: 0}
        queue: deque[tuple[str, int]] = deque([(start_id, 0)])

        while queue:
            node_id, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for edge in self.store.edges_from(node_id):
                if edge.target not in visited:
                    visited[edge.target] = depth + 1
                    queue.append((edge.target, depth + 1))
        return visited

    def find_related(self, start_id: str, depth: int = 2) -> set[str]:
        return {node_id for node_id in self.bfs(start_id, depth) if node_id != start_id}

    def find_by_types(self, types: Iterable[EntityType | str]) -> list[Node]:
        out: list[Node] = []
        for t in types:
            out.extend(self.store.nodes_by_type(t))
        return out

    def shortest_path(self, start_id: str, end_id: str) -> list[str]:
        """Node ids from start to end inclusive, or [] if not reachable within the hop bound."""
        if start_id == end_id:
            return [start_id]

        queue: deque[list[str]] = deque([[start_id]])
        visited = {start_id}
        while queue:
            path = queue.popleft()
            if len(path) > self.max_path_hops:
                continue
            for edge in self.store.edges_from(path[-1]):
                if edge.target == end_id:
                    return [*path, end_id]
                if edge.target not in visited:
                    visited.add(edge.target)
                    queue.append([*path, edge.target])
        return []

    def fuzzy_search(
        self, query: str, threshold: float = 0.6, *, timeout: float | None = None
    ) -> list[Node]:
        """Nodes whose label scores at least `threshold` against `query`, best first."""
        timeout = self.search_timeout_s if timeout is None else timeout
        deadline = time.monotonic() + timeout if timeout is not None else None

        q = (query or "").lower()
        scored: list[tuple[float, Node]] = []
        for node in self.store.all_nodes():
            if deadline is not None and time.monotonic() >= deadline:
                raise QueryTimeoutError(f"fuzzy search for {query!r} exceeded {timeout}s")
            score = similarity(q, node.label.lower())
            if score >= threshold:
                scored.append((score, node))

        # sort is stable, so equal scores keep store order
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [node for _, node in scored]

    def neighbors_by_edge_type(
        self, node_id: str, relation_types: Iterable[RelationType | str]
    ) -> list[str]:
        wanted = {coerce_relation_type(t) for t in relation_types}
        seen: dict[str, None] = {}
        for edge in self.store.edges_from(node_id):
            if edge.relation_type in wanted:
                seen.setdefault(edge.target, None)
        return list(seen)

    def skills_for_role(self, role_id: str) -> list[Node]:
        ids = self.neighbors_by_edge_type(role_id, SKILL_LINKS)
        return [n for n in (self.store.get_node(i) for i in ids) if n is not None]

    def roles_for_skill(self, skill_id: str) -> list[Node]:
        sources: dict[str, None] = {}
        for edge in self.store.edges_to(skill_id):
            if edge.relation_type in SKILL_LINKS:
                sources.setdefault(edge.source, None)
        return [n for n in (self.store.get_node(i) for i in sources) if n is not None]

    def context(self, node_id: str) -> NodeContext | None:
        node = self.store.get_node(node_id)
        if node is None:
            return None

        outgoing = [ResolvedEdge(e, self.store.get_node(e.target)) for e in self.store.edges_from(node_id)]
        incoming = [ResolvedEdge(e, self.store.get_node(e.source)) for e in self.store.edges_to(node_id)]
        dangling = sum(1 for r in (*outgoing, *incoming) if r.node is None)
        if dangling:
            logger.debug(f"Node {node_id} has {dangling} dangling edge(s)")
        return NodeContext(node=node, outgoing=outgoing, incoming=incoming)
