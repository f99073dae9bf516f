import threading

import pytest

from career_graph.errors import ConflictError, ValidationError
from career_graph.knowledge_graph import SQLiteEntityStore, SQLiteStoreConfig
from career_graph.knowledge_graph.models import (
    Edge,
    EntityType,
    Node,
    NodeMetadata,
    RelationType,
    make_edge,
    make_node,
)


def test_create_and_get_node(store, add_node):
    add_node("skill-javascript", "JavaScript", confidence=0.95, properties={"category": "programming"})

    got = store.get_node("skill-javascript")
    assert got is not None
    assert got.label == "JavaScript"
    assert got.properties == {"category": "programming"}
    assert got.metadata.confidence == 0.95
    assert got.version == 1


def test_missing_node_is_none(store):
    assert store.get_node("nope") is None
    assert store.get_edge("nope") is None


def test_upsert_replaces_whole_node(store, add_node):
    add_node("s1", "React", properties={"version": "16"}, description="UI library")
    add_node("s1", "React", confidence=0.8)

    nodes = [n for n in store.all_nodes() if n.id == "s1"]
    assert len(nodes) == 1
    assert nodes[0].properties == {}
    assert nodes[0].description is None
    assert nodes[0].metadata.confidence == 0.8
    assert nodes[0].version == 2


def test_unknown_entity_type_rejected(store):
    with pytest.raises(ValidationError):
        store.upsert_node(Node(id="x", entity_type="wizard", label="Magic"))
    assert store.statistics().node_count == 0


def test_empty_label_rejected(store):
    with pytest.raises(ValidationError):
        store.upsert_node(Node(id="x", entity_type=EntityType.SKILL, label="   "))


def test_confidence_is_clamped(store, add_node):
    assert add_node("hi", "Over", confidence=1.7).metadata.confidence == 1.0
    assert add_node("lo", "Under", confidence=-0.2).metadata.confidence == 0.0


def test_nodes_by_type_tracks_upserts_and_deletes(store, add_node):
    add_node("a", "React")
    add_node("b", "Vue")
    add_node("r", "Senior Developer", entity_type=EntityType.ROLE)

    assert {n.id for n in store.nodes_by_type(EntityType.SKILL)} == {"a", "b"}
    assert {n.id for n in store.nodes_by_type("role")} == {"r"}

    # retyping moves the node between type buckets
    add_node("b", "Vue", entity_type=EntityType.TECH_SKILL)
    store.delete_node("a")

    assert store.nodes_by_type(EntityType.SKILL) == []
    assert [n.id for n in store.nodes_by_type(EntityType.TECH_SKILL)] == ["b"]
    for t in EntityType:
        assert all(n.entity_type is t for n in store.nodes_by_type(t))


def test_search_label_is_case_insensitive_substring(store, add_node):
    add_node("skill-1", "JavaScript")
    add_node("skill-2", "TypeScript")
    add_node("skill-3", "Python")

    assert {n.id for n in store.search_label("Script")} == {"skill-1", "skill-2"}
    assert {n.id for n in store.search_label("PYTH")} == {"skill-3"}
    assert store.search_label("rust") == []


def test_label_index_follows_relabel(store, add_node):
    add_node("s", "Golang")
    add_node("s", "Rust")
    assert store.search_label("golang") == []
    assert [n.id for n in store.search_label("rust")] == ["s"]


def test_edge_indices(store, add_node, add_edge):
    add_node("role1", "Engineer", entity_type=EntityType.ROLE)
    add_node("skill1", "Python")
    add_node("org1", "Acme", entity_type=EntityType.ORGANIZATION)
    add_edge("e1", "role1", "skill1")
    add_edge("e2", "role1", "org1", RelationType.WORKED_AT)

    assert [e.id for e in store.edges_from("role1")] == ["e1", "e2"]
    assert [e.id for e in store.edges_to("skill1")] == ["e1"]
    assert [e.id for e in store.edges_by_type(RelationType.WORKED_AT)] == ["e2"]
    assert [e.id for e in store.edges_by_type("hasSkill")] == ["e1"]

    assert store.delete_edge("e1") is True
    assert store.delete_edge("e1") is False
    assert [e.id for e in store.edges_from("role1")] == ["e2"]
    assert store.edges_to("skill1") == []
    assert store.edges_by_type(RelationType.HAS_SKILL) == []


def test_unknown_relation_type_rejected(store):
    with pytest.raises(ValidationError):
        store.upsert_edge(Edge(id="e", source="a", target="b", relation_type="knows"))


def test_delete_node_leaves_edges_by_default(store, add_node, add_edge):
    add_node("a", "A")
    add_node("b", "B")
    add_edge("e", "a", "b")

    assert store.delete_node("b") is True
    assert store.get_node("b") is None
    assert [e.id for e in store.edges_to("b")] == ["e"]


def test_delete_node_cascade(store, add_node, add_edge):
    add_node("a", "A")
    add_node("b", "B")
    add_node("c", "C")
    add_edge("ab", "a", "b")
    add_edge("bc", "b", "c")
    add_edge("ac", "a", "c")

    store.delete_node("b", cascade=True)
    assert [e.id for e in store.all_edges()] == ["ac"]


def test_forward_references_allowed_by_default(store):
    store.upsert_edge(make_edge("ghost-a", "ghost-b", RelationType.RELATED_TO))
    assert store.statistics().edge_count == 1


def test_require_endpoints_rejects_dangling_edge(tmp_path):
    strict = SQLiteEntityStore(SQLiteStoreConfig(path=str(tmp_path / "g.db"), require_endpoints=True))
    a = strict.upsert_node(make_node(EntityType.ROLE, "Lead"))

    with pytest.raises(ValidationError):
        strict.upsert_edge(make_edge(a.id, "missing", RelationType.HAS_SKILL))

    # nodes from the same batch count as present
    b = make_node(EntityType.SKILL, "Go")
    strict.upsert(nodes=[b], edges=[make_edge(a.id, b.id, RelationType.HAS_SKILL)])
    assert strict.statistics().edge_count == 1


def test_expected_version_conflict(store, add_node):
    stored = add_node("s", "Docker")
    store.upsert_node(stored, expected_version=1)

    with pytest.raises(ConflictError):
        store.upsert_node(stored, expected_version=1)
    assert store.get_node("s").version == 2


def test_failed_batch_leaves_store_untouched(store):
    good = make_node(EntityType.SKILL, "SQL")
    bad = Node(id="bad", entity_type=EntityType.SKILL, label="")

    with pytest.raises(ValidationError):
        store.upsert(nodes=[good, bad], edges=[])
    assert store.statistics().node_count == 0


def test_statistics_and_clear(store, add_node, add_edge):
    add_node("a", "A")
    add_node("b", "B")
    add_edge("e", "a", "b")
    stats = store.statistics()
    assert (stats.node_count, stats.edge_count) == (2, 1)

    store.clear()
    stats = store.statistics()
    assert (stats.node_count, stats.edge_count) == (0, 0)
    assert store.nodes_by_type(EntityType.SKILL) == []
    assert store.edges_from("a") == []


def test_full_context_round_trips_through_dicts(store, add_node, add_edge):
    add_node("a", "Kubernetes", properties={"level": "expert"})
    add_edge("e", "a", "a", RelationType.RELATED_TO)

    ctx = store.full_context()
    assert [n["id"] for n in ctx["nodes"]] == ["a"]
    assert ctx["edges"][0]["type"] == "relatedTo"
    assert Node.from_dict(ctx["nodes"][0]).properties == {"level": "expert"}


def test_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "graph.db")
    first = SQLiteEntityStore(SQLiteStoreConfig(path=path))
    first.upsert_node(Node(id="s", entity_type=EntityType.SKILL, label="Rust", metadata=NodeMetadata(frequency=4)))

    second = SQLiteEntityStore(SQLiteStoreConfig(path=path))
    assert second.get_node("s").metadata.frequency == 4


def test_concurrent_upserts_keep_one_row_per_id(store):
    def worker(i):
        for j in range(10):
            store.upsert_node(
                Node(id=f"n{j}", entity_type=EntityType.SKILL, label=f"Skill {j} from {i}")
            )

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.statistics().node_count == 10
    assert len(store.nodes_by_type(EntityType.SKILL)) == 10
    assert max(n.version for n in store.all_nodes()) == 4


def test_unserializable_properties_rejected(store):
    node = Node(
        id="s",
        entity_type=EntityType.SKILL,
        label="Go",
        properties={"since": NodeMetadata().created_at},
    )
    with pytest.raises(ValidationError):
        store.upsert_node(node)
    assert store.get_node("s") is None
