#!/usr/bin/env python3
"""
store.py

GraphStore — SQLite persistence for the fact graph.

SQLite is the authoritative, canonical store.  Every fact row carries the
repo-relative path of the file that owns it, which is the provenance index
the reconciler retracts by.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from kgsync.errors import GraphLoadError, PersistError
from kgsync.facts import Fact, FactGraph

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

_SCHEMA_SQL = """
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS facts (
  owner      TEXT NOT NULL,
  subject    TEXT NOT NULL,
  predicate  TEXT NOT NULL,
  object     TEXT NOT NULL,
  PRIMARY KEY (owner, subject, predicate, object)
);

CREATE TABLE IF NOT EXISTS kg_meta (
  key    TEXT PRIMARY KEY,
  value  TEXT
);

CREATE INDEX IF NOT EXISTS idx_facts_subject   ON facts(subject);
CREATE INDEX IF NOT EXISTS idx_facts_predicate ON facts(predicate);
CREATE INDEX IF NOT EXISTS idx_facts_object    ON facts(object);
"""


# ---------------------------------------------------------------------------
# GraphStore
# ---------------------------------------------------------------------------


class GraphStore:
    """
    SQLite-backed store for a :class:`~kgsync.facts.FactGraph`.

    Example::

        store = GraphStore("graph.sqlite")
        store.write(graph)
        print(store.stats())

        facts = store.facts_owned_by("pkg/util.py")

    :param db_path: Path to the SQLite database file.
    :param create: Create the file (and schema) if it is absent.  When
                   ``False`` a missing file raises
                   :class:`~kgsync.errors.GraphLoadError` on first access.
    """

    def __init__(self, db_path: str | Path, *, create: bool = True) -> None:
        self.db_path = Path(db_path)
        self.create = create
        self._con: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @property
    def con(self) -> sqlite3.Connection:
        """Lazy SQLite connection (created on first access)."""
        if self._con is None:
            if self.create:
                self._con = self._open_for_write()
            else:
                self._con = self._open_read_only()
        return self._con

    def _open_for_write(self) -> sqlite3.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            con = sqlite3.connect(str(self.db_path))
            try:
                _check_schema_version(con, self.db_path)
                con.executescript(_SCHEMA_SQL)
                con.execute(
                    "INSERT OR IGNORE INTO kg_meta (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
                con.commit()
            except Exception:
                con.close()
                raise
        except (sqlite3.Error, OSError) as exc:
            raise GraphLoadError(f"Cannot open graph {self.db_path}: {exc}") from exc
        return con

    def _open_read_only(self) -> sqlite3.Connection:
        # mode=ro: loading never touches the input file
        if not self.db_path.is_file():
            raise GraphLoadError(f"Graph file not found: {self.db_path}")
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        try:
            con = sqlite3.connect(uri, uri=True)
            try:
                if not _has_table(con, "facts"):
                    raise GraphLoadError(f"Not a kgsync graph: {self.db_path}")
                _check_schema_version(con, self.db_path)
            except Exception:
                con.close()
                raise
        except (sqlite3.Error, OSError) as exc:
            raise GraphLoadError(f"Cannot open graph {self.db_path}: {exc}") from exc
        return con

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._con is not None:
            self._con.close()
            self._con = None

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, graph: FactGraph) -> None:
        """
        Replace the stored graph with *graph* in one transaction.

        :param graph: Graph to persist.
        """
        rows = [
            (owner, f.subject, f.predicate, f.object)
            for owner, facts in graph.items()
            for f in sorted(facts)
        ]
        con = self.con
        with con:
            con.execute("DELETE FROM facts;")
            con.executemany(
                """
                INSERT INTO facts (owner, subject, predicate, object)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self) -> FactGraph:
        """Load the whole stored graph."""
        owned: Dict[str, List[Fact]] = {}
        try:
            rows = self.con.execute(
                "SELECT owner, subject, predicate, object FROM facts"
            ).fetchall()
        except sqlite3.Error as exc:
            raise GraphLoadError(f"Cannot read graph {self.db_path}: {exc}") from exc
        for owner, s, p, o in rows:
            owned.setdefault(owner, []).append(Fact(s, p, o))
        return FactGraph(owned)

    def facts_owned_by(self, owner: str) -> List[Fact]:
        """
        Facts owned by one file.

        :param owner: Repo-relative path.
        :return: Facts sorted by subject, predicate, object.
        """
        rows = self.con.execute(
            """
            SELECT subject, predicate, object FROM facts
            WHERE owner = ?
            ORDER BY subject, predicate, object
            """,
            (owner,),
        ).fetchall()
        return [Fact(*r) for r in rows]

    def facts_about(self, subject: str) -> List[dict]:
        """All ``(predicate, object, owner)`` rows for a subject."""
        rows = self.con.execute(
            """
            SELECT predicate, object, owner FROM facts
            WHERE subject = ?
            ORDER BY predicate, object, owner
            """,
            (subject,),
        ).fetchall()
        return [{"predicate": r[0], "object": r[1], "owner": r[2]} for r in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Return fact counts by predicate.

        :return: dict with ``db_path``, ``total_facts``, ``total_owners``
                 and ``predicate_counts``.
        """
        total = self.con.execute(
            "SELECT COUNT(*) FROM (SELECT DISTINCT subject, predicate, object FROM facts)"
        ).fetchone()[0]
        owners = self.con.execute("SELECT COUNT(DISTINCT owner) FROM facts").fetchone()[0]
        pred_rows = self.con.execute(
            """
            SELECT predicate, COUNT(*) FROM
              (SELECT DISTINCT subject, predicate, object FROM facts)
            GROUP BY predicate ORDER BY predicate
            """
        ).fetchall()
        return {
            "db_path": str(self.db_path),
            "total_facts": total,
            "total_owners": owners,
            "predicate_counts": {r[0]: r[1] for r in pred_rows},
        }

    def __repr__(self) -> str:
        return f"GraphStore(db_path={self.db_path!r})"


# ---------------------------------------------------------------------------
# Graph collaborator functions
# ---------------------------------------------------------------------------


def load_graph(path: str | Path) -> FactGraph:
    """
    Load a persisted graph.

    :raises GraphLoadError: the file is missing or is not a readable graph
    """
    with GraphStore(path, create=False) as store:
        graph = store.read()
    logger.debug("loaded %d facts from %s", len(graph), path)
    return graph


def save_graph(graph: FactGraph, path: str | Path) -> None:
    """
    Persist *graph* to *path*, replacing its previous contents.

    :raises PersistError: on any SQLite or filesystem failure
    """
    try:
        with GraphStore(path) as store:
            store.write(graph)
    except (GraphLoadError, sqlite3.Error, OSError) as exc:
        raise PersistError(f"Failed to write graph {path}: {exc}") from exc


def create_graph(path: str | Path) -> None:
    """Create an empty graph file at *path* (no-op if it already exists)."""
    try:
        with GraphStore(path) as store:
            _ = store.con
    except GraphLoadError as exc:
        raise PersistError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _has_table(con: sqlite3.Connection, name: str) -> bool:
    row = con.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


def _check_schema_version(con: sqlite3.Connection, db_path: Path) -> None:
    """Reject graphs written by a newer, incompatible schema."""
    if not _has_table(con, "kg_meta"):
        return
    row = con.execute("SELECT value FROM kg_meta WHERE key = 'schema_version'").fetchone()
    if row is None:
        return
    try:
        version = int(row[0])
    except (TypeError, ValueError):
        raise GraphLoadError(f"Bad schema version {row[0]!r} in {db_path}") from None
    if version > SCHEMA_VERSION:
        raise GraphLoadError(
            f"Graph {db_path} has schema version {version}; this kgsync reads <= {SCHEMA_VERSION}"
        )
