from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from typing import Any

from rich.console import Console
from rich.table import Table

from career_graph.errors import CareerGraphError, ValidationError
from career_graph.settings import settings

console = Console()


def _configure_logging() -> None:
    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _jsonable(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (set, tuple)):
        return list(obj)
    return str(obj)


def _emit(obj: Any) -> int:
    print(json.dumps(obj, default=_jsonable, indent=2, ensure_ascii=False))
    return 0


def _show(title: str, columns: list[str], rows: list[list[Any]]) -> int:
    if not rows:
        console.print("[yellow]No results found[/yellow]")
        return 0
    table = Table(title=title)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(f"{v:.3f}" if isinstance(v, float) else str(v) for v in row))
    console.print(table)
    return 0


class _Graph:
    """Lazily wired components for one CLI invocation."""

    def __init__(self, db_path: str | None):
        from career_graph.feedback import FeedbackLedger, GraphLearner
        from career_graph.knowledge_graph import GraphQueryEngine, SQLiteEntityStore, SQLiteStoreConfig
        from career_graph.matching import RelevanceMatcher

        self.store = SQLiteEntityStore(
            SQLiteStoreConfig(
                path=db_path or settings.db_path,
                require_endpoints=settings.require_edge_endpoints,
            )
        )
        self.engine = GraphQueryEngine(self.store, search_timeout_s=settings.search_timeout_s)
        self.matcher = RelevanceMatcher(self.store, self.engine)
        self.ledger = FeedbackLedger.for_store(self.store)
        self.learner = GraphLearner(self.store, self.ledger)


def cmd_version(_args: argparse.Namespace) -> int:
    from career_graph import __version__

    print(__version__)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    if args.table:
        s, f = g.store.statistics(), g.ledger.statistics()
        return _show(
            "Graph statistics",
            ["Metric", "Value"],
            [
                ["nodes", s.node_count],
                ["edges", s.edge_count],
                ["feedback", f.total],
                ["correct", f.correct],
                ["avg edit distance", f.average_edit_distance],
            ],
        )
    return _emit({"graph": g.store.statistics(), "feedback": g.ledger.statistics()})


def cmd_import(args: argparse.Namespace) -> int:
    from career_graph.knowledge_graph import GraphIngestor

    g = _Graph(args.db_path)
    try:
        with open(args.file, encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{args.file} is not valid JSON: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"cannot read {args.file}: {e}") from e
    return _emit(GraphIngestor(g.store).ingest_document(payload))


def cmd_export(args: argparse.Namespace) -> int:
    return _emit(_Graph(args.db_path).store.full_context())


def cmd_search(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    hits = g.engine.fuzzy_search(args.query, args.threshold)
    if args.table:
        rows = [[n.id, n.entity_type.value, n.label, n.metadata.confidence] for n in hits]
        return _show(f"Search results for '{args.query}'", ["Id", "Type", "Label", "Confidence"], rows)
    return _emit(hits)


def cmd_related(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    return _emit(sorted(g.engine.find_related(args.node_id, args.depth)))


def cmd_path(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    return _emit(g.engine.shortest_path(args.start, args.end))


def cmd_context(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    ctx = g.engine.context(args.node_id)
    if ctx is None:
        print(f"node {args.node_id} not found", file=sys.stderr)
        return 1
    return _emit(
        {
            "node": ctx.node,
            "outgoing": [{"edge": r.edge, "target": r.node} for r in ctx.outgoing],
            "incoming": [{"edge": r.edge, "source": r.node} for r in ctx.incoming],
        }
    )


def cmd_match(args: argparse.Namespace) -> int:
    from career_graph.matching.context import RequestContext, intent_keywords

    g = _Graph(args.db_path)
    payload: dict[str, Any] = {
        "entity_type_candidates": args.types or [],
        "intent_keywords": args.keywords or [],
        "context_weight": args.weight,
        "sibling_keywords": args.sibling or [],
    }
    if args.intent:
        payload["intent"] = args.intent
        payload["intent_keywords"] = [*intent_keywords(args.intent), *payload["intent_keywords"]]
    ranked = g.matcher.rank(RequestContext.parse(payload))
    k = args.k or settings.match_count
    if args.table:
        rows = [[m.score, m.strategy, m.node.entity_type.value, m.node.label] for m in ranked[:k]]
        return _show("Matches", ["Score", "Strategy", "Type", "Label"], rows)
    return _emit([{"node": m.node, "score": m.score, "strategy": m.strategy} for m in ranked[:k]])


def cmd_feedback(args: argparse.Namespace) -> int:
    import pydantic

    from career_graph.feedback import VerdictReport

    g = _Graph(args.db_path)
    try:
        report = VerdictReport(
            field_id=args.field,
            source_node_id=args.node or "",
            original_suggestion=args.suggestion,
            user_edit=args.edit,
            verdict=args.verdict,
            affected_node_ids=args.affected or [],
            notes=args.notes,
        )
    except pydantic.ValidationError as e:
        print(f"invalid feedback: {e}", file=sys.stderr)
        return 2
    record, update = g.learner.record_and_learn(report)
    return _emit({"record": record, "update": update})


def cmd_learn(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    return _emit(g.learner.process_all_history(skip_processed=args.skip_processed))


def cmd_refine(args: argparse.Namespace) -> int:
    g = _Graph(args.db_path)
    return _emit({"edges_refined": g.learner.refine_relationship_weights()})


def cmd_patterns(args: argparse.Namespace) -> int:
    return _emit(_Graph(args.db_path).learner.analyze_patterns())


def cmd_improvements(args: argparse.Namespace) -> int:
    out = _Graph(args.db_path).learner.suggest_improvements()
    if args.table:
        rows = [[i.priority, i.message, ", ".join(i.fields)] for i in out]
        return _show("Improvements", ["Priority", "Message", "Fields"], rows)
    return _emit(out)


def cmd_insight(args: argparse.Namespace) -> int:
    return _emit(_Graph(args.db_path).ledger.node_insight(args.node_id))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="career-graph")
    p.add_argument("--db-path", default=None, help="Graph database file (default from settings)")
    p.add_argument("--table", action="store_true", help="Render results as a table instead of JSON")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=cmd_version)
    sub.add_parser("stats", help="Node/edge counts and feedback statistics").set_defaults(func=cmd_stats)

    imp = sub.add_parser("import", help="Ingest a {nodes, edges} JSON document")
    imp.add_argument("file")
    imp.set_defaults(func=cmd_import)

    sub.add_parser("export", help="Dump the whole graph as JSON").set_defaults(func=cmd_export)

    search = sub.add_parser("search", help="Fuzzy label search")
    search.add_argument("query")
    search.add_argument("--threshold", type=float, default=0.6)
    search.set_defaults(func=cmd_search)

    related = sub.add_parser("related", help="Nodes reachable over outgoing edges")
    related.add_argument("node_id")
    related.add_argument("--depth", type=int, default=2)
    related.set_defaults(func=cmd_related)

    path = sub.add_parser("path", help="Shortest outgoing path between two nodes")
    path.add_argument("start")
    path.add_argument("end")
    path.set_defaults(func=cmd_path)

    context = sub.add_parser("context", help="A node with its resolved edges")
    context.add_argument("node_id")
    context.set_defaults(func=cmd_context)

    match = sub.add_parser("match", help="Rank entities for a request context")
    match.add_argument("--types", nargs="*", help="Candidate entity types")
    match.add_argument("--keywords", nargs="*", help="Intent keywords")
    match.add_argument("--intent", default=None, help="Intent name; expands to its keywords")
    match.add_argument("--sibling", nargs="*", help="Keywords from neighbouring fields")
    match.add_argument("--weight", type=float, default=0.7, help="Context weight in [0, 1]")
    match.add_argument("-k", type=int, default=None)
    match.set_defaults(func=cmd_match)

    fb = sub.add_parser("feedback", help="Record a verdict and learn from it")
    fb.add_argument("--field", required=True)
    fb.add_argument("--node", default=None, help="Source node id of the suggestion")
    fb.add_argument(
        "--verdict",
        required=True,
        choices=["correct", "partially_correct", "incorrect", "ignored"],
    )
    fb.add_argument("--suggestion", default="")
    fb.add_argument("--edit", default="")
    fb.add_argument("--affected", nargs="*")
    fb.add_argument("--notes", default="")
    fb.set_defaults(func=cmd_feedback)

    learn = sub.add_parser("learn", help="Process the whole feedback history")
    learn.add_argument("--skip-processed", action="store_true")
    learn.set_defaults(func=cmd_learn)

    sub.add_parser("refine", help="Refine relationship confidence").set_defaults(func=cmd_refine)
    sub.add_parser("patterns", help="Per-field accuracy patterns").set_defaults(func=cmd_patterns)
    sub.add_parser("improvements", help="Recommendations from feedback").set_defaults(
        func=cmd_improvements
    )

    insight = sub.add_parser("insight", help="Feedback-derived confidence for one node")
    insight.add_argument("node_id")
    insight.set_defaults(func=cmd_insight)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging()
    try:
        return args.func(args)
    except CareerGraphError as e:
        print(f"could not update graph: {e}", file=sys.stderr)
        return 1


def app() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    app()
