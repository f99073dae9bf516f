import pytest

from career_graph.knowledge_graph import SQLiteEntityStore
from career_graph.settings import CareerGraphSettings


def test_defaults(monkeypatch):
    monkeypatch.delenv("CAREER_GRAPH_DB_PATH", raising=False)
    s = CareerGraphSettings()
    assert s.db_path == "~/.career_graph/graph.db"
    assert s.match_count == 3
    assert s.require_edge_endpoints is False
    assert s.search_timeout_s is None


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CAREER_GRAPH_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("CAREER_GRAPH_REQUIRE_EDGE_ENDPOINTS", "true")
    monkeypatch.setenv("CAREER_GRAPH_SEARCH_TIMEOUT_S", "0.25")

    s = CareerGraphSettings()
    assert s.require_edge_endpoints is True
    assert s.search_timeout_s == 0.25

    store = SQLiteEntityStore.from_settings(s)
    assert store.cfg.require_endpoints is True
    assert (tmp_path / "env.db").exists()


def test_invalid_match_count(monkeypatch):
    monkeypatch.setenv("CAREER_GRAPH_MATCH_COUNT", "0")
    with pytest.raises(ValueError):
        CareerGraphSettings()
