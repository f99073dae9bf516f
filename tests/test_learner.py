import pytest

from career_graph.errors import NotFoundError, StorageError
from career_graph.feedback import LearningPolicy, Verdict, VerdictReport
from career_graph.feedback.learner import GraphLearner
from career_graph.knowledge_graph.models import EntityType, NodeSource, RelationType


def _report(verdict, node="s1", field="skills", edit="", affected=()):
    return VerdictReport(
        field_id=field,
        source_node_id=node,
        original_suggestion="JavaScript",
        user_edit=edit,
        verdict=verdict,
        affected_node_ids=list(affected),
    )


def test_correct_verdict_raises_confidence(store, ledger, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.8)
    record = ledger.record_verdict(_report(Verdict.CORRECT))

    update = learner.process_feedback(record.id)

    node = store.get_node("s1")
    assert node.metadata.confidence == pytest.approx(0.85)
    assert node.metadata.frequency == 2
    assert update.nodes_updated == 1
    assert ledger.is_processed(record.id)


@pytest.mark.parametrize(
    "verdict, start, expected",
    [
        (Verdict.PARTIALLY_CORRECT, 0.5, 0.52),
        (Verdict.INCORRECT, 0.8, 0.7),
        (Verdict.IGNORED, 0.8, 0.78),
        (Verdict.INCORRECT, 0.35, 0.3),
        (Verdict.CORRECT, 0.98, 1.0),
    ],
)
def test_verdict_deltas_are_clamped(store, ledger, learner, add_node, verdict, start, expected):
    add_node("s1", "JavaScript", confidence=start)
    learner.process_feedback(ledger.record_verdict(_report(verdict)).id)
    assert store.get_node("s1").metadata.confidence == pytest.approx(expected)


def test_feedback_never_pushes_below_floor(store, ledger, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.4)
    for _ in range(5):
        learner.process_feedback(ledger.record_verdict(_report(Verdict.INCORRECT)).id)
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.3)


def test_incorrect_with_edit_learns_new_skill(store, ledger, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.8)
    record = ledger.record_verdict(_report(Verdict.INCORRECT, edit="TypeScript"))

    update = learner.process_feedback(record.id)

    assert update.new_nodes_created == 1
    learned = store.search_label("typescript")
    assert len(learned) == 1
    node = learned[0]
    assert node.entity_type is EntityType.SKILL
    assert node.metadata.source is NodeSource.USER_FEEDBACK
    assert node.metadata.confidence == pytest.approx(0.8)

    edges = store.edges_to(node.id)
    assert len(edges) == 1
    edge = edges[0]
    assert (edge.source, edge.relation_type) == ("s1", RelationType.HAS_SKILL)
    assert edge.metadata.inferred is True
    assert edge.metadata.confidence == pytest.approx(0.7)
    assert edge.properties.context == "learned from feedback"


def test_incorrect_edit_matching_existing_label_creates_nothing(store, ledger, learner, add_node):
    add_node("s1", "JavaScript")
    add_node("s2", "Python")
    record = ledger.record_verdict(_report(Verdict.INCORRECT, edit="python"))

    assert learner.process_feedback(record.id).new_nodes_created == 0
    assert store.statistics().node_count == 2
    assert store.statistics().edge_count == 0


def test_correction_without_source_node_creates_unlinked_node(store, ledger, learner):
    record = ledger.record_verdict(_report(Verdict.INCORRECT, node="", edit="Terraform"))
    update = learner.process_feedback(record.id)

    assert (update.nodes_updated, update.new_nodes_created) == (0, 1)
    assert store.statistics().edge_count == 0


def test_unknown_record_raises(learner):
    with pytest.raises(NotFoundError):
        learner.process_feedback("fb-missing")


def test_reprocessing_applies_delta_twice(store, ledger, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.8)
    record = ledger.record_verdict(_report(Verdict.CORRECT))

    learner.process_feedback(record.id)
    learner.process_feedback(record.id)
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.9)


def test_process_all_history_counts_and_skips(store, ledger, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.5)
    ledger.record_verdict(_report(Verdict.CORRECT))
    ledger.record_verdict(_report(Verdict.INCORRECT, edit="Rust"))

    summary = learner.process_all_history()
    assert (summary.processed, summary.errors, summary.skipped) == (2, 0, 0)
    assert summary.nodes_updated == 2
    assert summary.new_nodes_created == 1

    again = learner.process_all_history(skip_processed=True)
    assert (again.processed, again.skipped) == (0, 2)
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.45)


def test_process_all_history_isolates_failures(ledger, learner, add_node, monkeypatch):
    add_node("s1", "JavaScript")
    bad = ledger.record_verdict(_report(Verdict.CORRECT))
    ledger.record_verdict(_report(Verdict.CORRECT))

    original = learner._adjust_source_node

    def flaky(tx, record, update):
        if record.id == bad.id:
            raise StorageError("disk full")
        original(tx, record, update)

    monkeypatch.setattr(learner, "_adjust_source_node", flaky)
    summary = learner.process_all_history()

    assert (summary.processed, summary.errors) == (1, 1)
    assert not ledger.is_processed(bad.id)


def test_record_and_learn(store, learner, add_node):
    add_node("s1", "JavaScript", confidence=0.8)
    record, update = learner.record_and_learn(_report(Verdict.INCORRECT))

    assert record.verdict is Verdict.INCORRECT
    assert update.nodes_updated == 1
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.7)


def test_custom_policy(store, ledger, add_node):
    add_node("s1", "JavaScript", confidence=0.5)
    policy = LearningPolicy(deltas={v: 0.25 for v in Verdict})
    learner = GraphLearner(store, ledger, policy)

    learner.record_and_learn(_report(Verdict.IGNORED))
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.75)


def _link(add_node, add_edge, confidence=0.9):
    add_node("r1", "Frontend Engineer", entity_type=EntityType.ROLE)
    add_node("s1", "JavaScript")
    add_edge("e1", "r1", "s1", confidence=confidence)


def test_refine_needs_more_than_two_correct_uses(store, ledger, learner, add_node, add_edge):
    _link(add_node, add_edge)
    for _ in range(2):
        ledger.record_verdict(_report(Verdict.CORRECT, node="r1", affected=["s1"]))
    assert learner.refine_relationship_weights() == 0

    ledger.record_verdict(_report(Verdict.CORRECT, node="r1", affected=["s1"]))
    assert learner.refine_relationship_weights() == 1
    assert store.get_edge("e1").metadata.confidence == pytest.approx(0.95)


def test_refine_caps_at_one(store, ledger, learner, add_node, add_edge):
    _link(add_node, add_edge, confidence=0.98)
    for _ in range(3):
        ledger.record_verdict(_report(Verdict.CORRECT, node="r1", affected=["s1"]))
    learner.refine_relationship_weights()
    assert store.get_edge("e1").metadata.confidence == 1.0


def test_refine_ignores_non_correct_verdicts(store, ledger, learner, add_node, add_edge):
    _link(add_node, add_edge)
    for _ in range(3):
        ledger.record_verdict(_report(Verdict.PARTIALLY_CORRECT, node="r1", affected=["s1"]))
    assert learner.refine_relationship_weights() == 0
    assert store.get_edge("e1").metadata.confidence == pytest.approx(0.9)


def test_analyze_patterns(ledger, learner):
    for _ in range(3):
        ledger.record_verdict(_report(Verdict.INCORRECT, field="education"))
        ledger.record_verdict(_report(Verdict.CORRECT, field="skills"))
    for _ in range(2):
        ledger.record_verdict(_report(Verdict.INCORRECT, field="title"))

    report = learner.analyze_patterns()
    assert [(f.field_id, f.accuracy, f.attempts) for f in report.problematic_fields] == [
        ("education", 0.0, 3)
    ]
    assert report.problematic_fields[0].recommendation is not None
    assert [f.field_id for f in report.accurate_fields] == ["skills"]
    assert report.average_accuracy == pytest.approx(3 / 8)
    assert report.total == 8


def test_suggest_improvements(ledger, learner):
    for _ in range(3):
        ledger.record_verdict(_report(Verdict.INCORRECT, field="education"))
    ledger.record_verdict(_report(Verdict.CORRECT, field="skills"))

    improvements = learner.suggest_improvements()
    assert [i.priority for i in improvements] == ["high", "critical"]
    assert improvements[0].fields == ["education"]
    assert "60%" in improvements[1].message


def test_suggest_improvements_quiet_when_accurate(ledger, learner):
    for _ in range(4):
        ledger.record_verdict(_report(Verdict.CORRECT, field="skills"))
    assert learner.suggest_improvements() == []


def test_suggest_improvements_on_empty_history(learner):
    assert learner.suggest_improvements() == []


def test_failed_correction_rolls_back_confidence_change(store, ledger, learner, add_node, monkeypatch):
    add_node("s1", "JavaScript", confidence=0.8)
    record = ledger.record_verdict(_report(Verdict.INCORRECT, edit="TypeScript"))

    def broken(tx, record, update):
        raise StorageError("disk full")

    monkeypatch.setattr(learner, "_learn_correction", broken)
    summary = learner.process_all_history(skip_processed=True)
    assert summary.errors == 1
    assert store.get_node("s1").metadata.confidence == pytest.approx(0.8)
    assert not ledger.is_processed(record.id)

    monkeypatch.undo()
    learner.process_all_history(skip_processed=True)
    learner.process_all_history(skip_processed=True)

    assert store.get_node("s1").metadata.confidence == pytest.approx(0.7)
    assert store.get_node("s1").metadata.frequency == 2
    assert len(store.search_label("typescript")) == 1
    assert ledger.is_processed(record.id)


def test_mark_processed_rejects_foreign_transaction(tmp_path, ledger):
    from career_graph.knowledge_graph import SQLiteEntityStore, SQLiteStoreConfig

    other = SQLiteEntityStore(SQLiteStoreConfig(path=str(tmp_path / "other.db")))
    record = ledger.record_verdict(_report(Verdict.CORRECT))
    with pytest.raises(StorageError):
        with other.transaction() as tx:
            ledger.mark_processed(record.id, tx)
    assert not ledger.is_processed(record.id)
