"""Namespace-scoped graph store: protocol, in-memory and SQLite backends."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.types import EdgeKind, GraphEdge, GraphNode, NodeKind

LOG = logging.getLogger(__name__)


class GraphStore(Protocol):
    def upsert(self, namespace: str, nodes: list[GraphNode], edges: list[GraphEdge]) -> None:
        """Insert or replace nodes by id and edges by (source, target, kind)."""

    def query(self, namespace: str) -> tuple[list[GraphNode], list[GraphEdge]]:
        """All nodes and edges of the namespace, in a stable order."""

    def delete_namespace(self, namespace: str) -> None:
        """Remove every node and edge of the namespace."""


class InMemoryGraphStore:
    def __init__(self) -> None:
        self._nodes: dict[str, dict[str, GraphNode]] = {}
        self._edges: dict[str, dict[tuple[str, str, str], GraphEdge]] = {}
        self._lock = threading.Lock()

    def upsert(self, namespace: str, nodes: list[GraphNode], edges: list[GraphEdge]) -> None:
        with self._lock:
            node_map = self._nodes.setdefault(namespace, {})
            for node in nodes:
                node_map[node.id] = node
            edge_map = self._edges.setdefault(namespace, {})
            for edge in edges:
                edge_map[(edge.source, edge.target, edge.kind.value)] = edge

    def query(self, namespace: str) -> tuple[list[GraphNode], list[GraphEdge]]:
        with self._lock:
            nodes = sorted(self._nodes.get(namespace, {}).values(), key=lambda node: node.id)
            edges = [
                edge
                for _, edge in sorted(self._edges.get(namespace, {}).items())
            ]
        return nodes, edges

    def delete_namespace(self, namespace: str) -> None:
        with self._lock:
            self._nodes.pop(namespace, None)
            self._edges.pop(namespace, None)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS graph_nodes (
    namespace TEXT NOT NULL,
    id TEXT NOT NULL,
    label TEXT NOT NULL,
    kind TEXT NOT NULL,
    PRIMARY KEY (namespace, id)
);

CREATE TABLE IF NOT EXISTS graph_edges (
    namespace TEXT NOT NULL,
    source TEXT NOT NULL,
    target TEXT NOT NULL,
    kind TEXT NOT NULL,
    PRIMARY KEY (namespace, source, target, kind)
);
"""


class SqliteGraphStore:
    """Graph store persisted in a local SQLite file.

    Every statement filters on `namespace`; a connection is opened per call so
    the store can be shared across request threads.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executescript(_SCHEMA_SQL)
        except sqlite3.Error as exc:
            raise UpstreamUnavailable("graph-store", str(exc)) from exc
        LOG.info("Opened graph store at %s", self.db_path)

    def upsert(self, namespace: str, nodes: list[GraphNode], edges: list[GraphEdge]) -> None:
        try:
            with self._lock, sqlite3.connect(self.db_path) as conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO graph_nodes (namespace, id, label, kind) VALUES (?, ?, ?, ?)",
                    [(namespace, node.id, node.label, node.kind.value) for node in nodes],
                )
                conn.executemany(
                    "INSERT OR REPLACE INTO graph_edges (namespace, source, target, kind) VALUES (?, ?, ?, ?)",
                    [(namespace, edge.source, edge.target, edge.kind.value) for edge in edges],
                )
        except sqlite3.Error as exc:
            raise UpstreamUnavailable("graph-store", str(exc)) from exc

    def query(self, namespace: str) -> tuple[list[GraphNode], list[GraphEdge]]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                node_rows = conn.execute(
                    "SELECT id, label, kind FROM graph_nodes WHERE namespace = ? ORDER BY id",
                    (namespace,),
                ).fetchall()
                edge_rows = conn.execute(
                    "SELECT source, target, kind FROM graph_edges WHERE namespace = ? "
                    "ORDER BY source, target, kind",
                    (namespace,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise UpstreamUnavailable("graph-store", str(exc)) from exc
        nodes = [GraphNode(id=row[0], label=row[1], kind=NodeKind(row[2])) for row in node_rows]
        edges = [GraphEdge(source=row[0], target=row[1], kind=EdgeKind(row[2])) for row in edge_rows]
        return nodes, edges

    def delete_namespace(self, namespace: str) -> None:
        try:
            with self._lock, sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM graph_nodes WHERE namespace = ?", (namespace,))
                conn.execute("DELETE FROM graph_edges WHERE namespace = ?", (namespace,))
        except sqlite3.Error as exc:
            raise UpstreamUnavailable("graph-store", str(exc)) from exc
