from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .errors import StorageError

SCHEMA = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS nodes (
  id TEXT PRIMARY KEY,
  entity_type TEXT NOT NULL,
  label TEXT NOT NULL,
  label_lc TEXT NOT NULL,
  description TEXT,
  properties_json TEXT NOT NULL,
  created_at TEXT NOT NULL,
  source TEXT NOT NULL,
  confidence REAL NOT NULL,
  frequency INTEGER NOT NULL,
  version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS edges (
  id TEXT PRIMARY KEY,
  source TEXT NOT NULL,
  target TEXT NOT NULL,
  relation_type TEXT NOT NULL,
  weight REAL NOT NULL,
  context TEXT,
  inferred INTEGER NOT NULL,
  confidence REAL NOT NULL,
  updated_at TEXT NOT NULL,
  version INTEGER NOT NULL
);

-- append-only; rows are never updated
CREATE TABLE IF NOT EXISTS feedback (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  field_id TEXT NOT NULL,
  source_node_id TEXT NOT NULL,
  original_suggestion TEXT NOT NULL,
  user_edit TEXT NOT NULL,
  verdict TEXT NOT NULL,
  affected_node_ids_json TEXT NOT NULL,
  form_url TEXT NOT NULL,
  notes TEXT NOT NULL,
  timestamp TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS feedback_processed (
  record_id TEXT PRIMARY KEY,
  processed_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_nodes_type ON nodes(entity_type);
CREATE INDEX IF NOT EXISTS idx_nodes_label_lc ON nodes(label_lc);
CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source);
CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target);
CREATE INDEX IF NOT EXISTS idx_edges_type ON edges(relation_type);
CREATE INDEX IF NOT EXISTS idx_feedback_source ON feedback(source_node_id);
"""


@dataclass
class GraphDB:
    """Connection factory for the graph file.

    One short-lived connection per operation; WAL lets readers run next to a writer.
    """

    path: str

    def __post_init__(self) -> None:
        self.path = str(Path(self.path).expanduser())
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.path, timeout=30.0)
        con.row_factory = sqlite3.Row
        return con

    def init(self) -> None:
        with self.transaction() as con:
            con.executescript(SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on any failure; sqlite errors become StorageError."""
        try:
            con = self.connect()
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.path}: {e}") from e
        try:
            yield con
            con.commit()
        except sqlite3.Error as e:
            con.rollback()
            raise StorageError(str(e)) from e
        except BaseException:
            con.rollback()
            raise
        finally:
            con.close()

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        try:
            con = self.connect()
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.path}: {e}") from e
        try:
            yield con
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            con.close()
