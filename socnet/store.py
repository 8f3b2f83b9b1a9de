"""SQLite graph store: nodes, typed directed edges, properties and a unique index.

The person layer only talks to the GraphStore protocol below. The SQLite
implementation keeps one connection per thread (WAL mode, busy timeout)
and exposes scoped transactions: everything done inside
``with store.transaction():`` commits together or not at all.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ContextManager, Iterator, Protocol

from loguru import logger

from socnet.errors import NotFoundError, StoreError


class Direction(Enum):
    """Which way to follow an edge from a node."""
    OUTGOING = "outgoing"
    INCOMING = "incoming"
    BOTH = "both"


@dataclass(frozen=True, order=True)
class Node:
    """Handle to a stored node. Carries only its id; ordered by creation."""
    id: int


@dataclass(frozen=True)
class Edge:
    """Handle to a stored directed edge."""
    id: int
    start: Node
    end: Node
    type: str

    def other(self, node: Node) -> Node:
        """The endpoint that isn't ``node``."""
        return self.end if node == self.start else self.start


class GraphStore(Protocol):
    """What the person layer needs from a graph store."""

    def create_node(self, properties: dict[str, Any] | None = None) -> Node: ...

    def delete_node(self, node: Node) -> None: ...

    def has_node(self, node: Node) -> bool: ...

    def create_edge(self, start: Node, end: Node, rel_type: str) -> Edge: ...

    def delete_edge(self, edge: Edge) -> None: ...

    def find_edges(
        self,
        node: Node,
        rel_type: str,
        direction: Direction = Direction.BOTH,
        other: Node | None = None,
    ) -> list[Edge]: ...

    def neighbors(
        self, node: Node, rel_type: str, direction: Direction = Direction.BOTH
    ) -> Iterator[Node]: ...

    def degree(
        self, node: Node, rel_type: str, direction: Direction = Direction.BOTH
    ) -> int: ...

    def get_property(self, node: Node, key: str, default: Any = None) -> Any: ...

    def set_property(self, node: Node, key: str, value: Any) -> None: ...

    def index_node(self, node: Node, key: str, value: Any) -> None: ...

    def unindex_node(self, node: Node, key: str) -> None: ...

    def find_node_by_index(self, key: str, value: Any) -> Node | None: ...

    def indexed_nodes(self, key: str) -> Iterator[Node]: ...

    def count_indexed(self, key: str) -> int: ...

    def transaction(self) -> Any: ...

    def shutdown(self) -> None: ...


# ── Schema ──────────────────────────────────────────────────

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS nodes (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at  TEXT NOT NULL
);

-- One row per (node, key), values are JSON
CREATE TABLE IF NOT EXISTS node_properties (
    node_id     INTEGER NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,
    PRIMARY KEY (node_id, key)
);

-- No cascade: a node can't be deleted while edges still point at it
CREATE TABLE IF NOT EXISTS edges (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    start_node  INTEGER NOT NULL REFERENCES nodes(id),
    end_node    INTEGER NOT NULL REFERENCES nodes(id),
    type        TEXT NOT NULL
);

-- Unique lookup index (e.g. person name -> node)
CREATE TABLE IF NOT EXISTS node_index (
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,
    node_id     INTEGER NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
    PRIMARY KEY (key, value)
);

CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_edges_start ON edges(start_node, type);
CREATE INDEX IF NOT EXISTS idx_edges_end ON edges(end_node, type);
CREATE INDEX IF NOT EXISTS idx_node_index_node ON node_index(node_id, key);
"""


class SqliteGraphStore:
    """SQLite-backed GraphStore.

    Thread-safe, using a connection per thread. ``":memory:"`` becomes a
    uniquely named shared-cache database so all threads of one store see
    the same graph while separate stores stay isolated.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        busy_timeout_ms: int = 5000,
        journal_mode: str = "WAL",
    ) -> None:
        if db_path == ":memory:":
            self._db_path = f"file:socnet-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._uri = True
        else:
            self._db_path = str(db_path)
            self._uri = False
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = journal_mode
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()
        # Shared-cache table locks fail at once instead of honouring
        # busy_timeout, so a memory store runs one thread at a time.
        self._serial = threading.RLock() if self._uri else None
        self._closed = False
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection."""
        if self._closed:
            raise StoreError("Graph store has been shut down")
        if getattr(self._local, "conn", None) is None:
            try:
                with self._serialized():
                    conn = sqlite3.connect(
                        self._db_path,
                        uri=self._uri,
                        isolation_level=None,  # transactions are begun explicitly
                        check_same_thread=False,
                    )
                    conn.row_factory = sqlite3.Row
                    conn.execute(f"PRAGMA journal_mode={self._journal_mode}")
                    conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
                    conn.execute("PRAGMA foreign_keys=ON")
            except sqlite3.Error as e:
                raise StoreError(f"Failed to open graph store: {e}") from e
            self._local.conn = conn
            self._local.depth = 0
            with self._lock:
                self._connections.append(conn)
        return self._local.conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Cursor whose sqlite errors surface as StoreError."""
        with self._serialized():
            cursor = self._get_conn().cursor()
            try:
                yield cursor
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            finally:
                cursor.close()

    def _serialized(self) -> ContextManager[Any]:
        """The memory store's lock, or a no-op for file databases."""
        return self._serial if self._serial is not None else nullcontext()

    def _init_db(self) -> None:
        """Create tables."""
        with self._cursor() as cur:
            cur.executescript(SCHEMA_SQL)
            cur.execute(
                "INSERT OR REPLACE INTO schema_meta (key, value) VALUES (?, ?)",
                ("schema_version", str(SCHEMA_VERSION)),
            )
        logger.info(f"Graph store opened at {self._db_path}")

    # ── Transactions ────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[SqliteGraphStore]:
        """Scoped transaction: commit on success, roll back on any exception.

        Nested scopes join the outermost one; only the outermost scope
        commits or rolls back.
        """
        conn = self._get_conn()
        depth = self._local.depth
        if depth > 0:
            self._local.depth = depth + 1
            try:
                yield self
            finally:
                self._local.depth = depth
            return

        with self._serialized():
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(f"Could not begin transaction: {e}") from e
            self._local.depth = 1
            try:
                yield self
            except BaseException as e:
                self._local.depth = 0
                logger.warning(f"Transaction rolled back: {type(e).__name__}: {e}")
                self._rollback(conn)
                raise
            else:
                self._local.depth = 0
                try:
                    conn.commit()
                except sqlite3.Error as e:
                    self._rollback(conn)
                    raise StoreError(f"Commit failed: {e}") from e

    def _rollback(self, conn: sqlite3.Connection) -> None:
        try:
            conn.rollback()
        except sqlite3.Error as e:
            raise StoreError(f"Rollback failed: {e}") from e

    @property
    def in_transaction(self) -> bool:
        """Whether the calling thread is inside transaction()."""
        return getattr(self._local, "depth", 0) > 0

    # ── Nodes ───────────────────────────────────────────────

    def create_node(self, properties: dict[str, Any] | None = None) -> Node:
        """Create a node, optionally with initial properties."""
        with self.transaction(), self._cursor() as cur:
            cur.execute(
                "INSERT INTO nodes (created_at) VALUES (?)",
                (datetime.now(timezone.utc).isoformat(),),
            )
            node = Node(cur.lastrowid)
            for key, value in (properties or {}).items():
                cur.execute(
                    "INSERT INTO node_properties (node_id, key, value) VALUES (?, ?, ?)",
                    (node.id, key, json.dumps(value)),
                )
        return node

    def delete_node(self, node: Node) -> None:
        """Delete a node. Fails with StoreError while edges still touch it."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM nodes WHERE id = ?", (node.id,))
            if cur.rowcount == 0:
                raise NotFoundError(node)

    def has_node(self, node: Node) -> bool:
        with self._cursor() as cur:
            cur.execute("SELECT 1 FROM nodes WHERE id = ?", (node.id,))
            return cur.fetchone() is not None

    def get_property(self, node: Node, key: str, default: Any = None) -> Any:
        """Read a property. Missing key gives ``default``; missing node raises."""
        with self._cursor() as cur:
            cur.execute(
                "SELECT value FROM node_properties WHERE node_id = ? AND key = ?",
                (node.id, key),
            )
            row = cur.fetchone()
        if row is not None:
            return json.loads(row["value"])
        if not self.has_node(node):
            raise NotFoundError(node)
        return default

    def set_property(self, node: Node, key: str, value: Any) -> None:
        if not self.has_node(node):
            raise NotFoundError(node)
        with self._cursor() as cur:
            cur.execute(
                "INSERT OR REPLACE INTO node_properties (node_id, key, value) "
                "VALUES (?, ?, ?)",
                (node.id, key, json.dumps(value)),
            )

    # ── Edges ───────────────────────────────────────────────

    def create_edge(self, start: Node, end: Node, rel_type: str) -> Edge:
        """Create a directed edge ``start -[rel_type]-> end``."""
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO edges (start_node, end_node, type) VALUES (?, ?, ?)",
                (start.id, end.id, rel_type),
            )
            return Edge(cur.lastrowid, start, end, rel_type)

    def delete_edge(self, edge: Edge) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM edges WHERE id = ?", (edge.id,))

    def find_edges(
        self,
        node: Node,
        rel_type: str,
        direction: Direction = Direction.BOTH,
        other: Node | None = None,
    ) -> list[Edge]:
        """Edges of ``rel_type`` touching ``node``, optionally only those to ``other``."""
        clauses = []
        params: list[Any] = []
        if direction in (Direction.OUTGOING, Direction.BOTH):
            clause = "(start_node = ?" + (" AND end_node = ?)" if other is not None else ")")
            clauses.append(clause)
            params += [node.id, other.id] if other is not None else [node.id]
        if direction in (Direction.INCOMING, Direction.BOTH):
            clause = "(end_node = ?" + (" AND start_node = ?)" if other is not None else ")")
            clauses.append(clause)
            params += [node.id, other.id] if other is not None else [node.id]

        where = " OR ".join(clauses)
        with self._cursor() as cur:
            cur.execute(
                f"""SELECT id, start_node, end_node, type FROM edges
                    WHERE type = ? AND ({where})
                    ORDER BY id""",
                [rel_type, *params],
            )
            return [
                Edge(row["id"], Node(row["start_node"]), Node(row["end_node"]), row["type"])
                for row in cur.fetchall()
            ]

    def neighbors(
        self, node: Node, rel_type: str, direction: Direction = Direction.BOTH
    ) -> Iterator[Node]:
        """Nodes one ``rel_type`` hop away, in id (creation) order."""
        if direction is Direction.OUTGOING:
            sql = """SELECT DISTINCT end_node AS id FROM edges
                     WHERE start_node = ? AND type = ? ORDER BY id"""
            params: tuple = (node.id, rel_type)
        elif direction is Direction.INCOMING:
            sql = """SELECT DISTINCT start_node AS id FROM edges
                     WHERE end_node = ? AND type = ? ORDER BY id"""
            params = (node.id, rel_type)
        else:
            sql = """SELECT end_node AS id FROM edges WHERE start_node = ? AND type = ?
                     UNION
                     SELECT start_node AS id FROM edges WHERE end_node = ? AND type = ?
                     ORDER BY id"""
            params = (node.id, rel_type, node.id, rel_type)

        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return (Node(row["id"]) for row in rows)

    def degree(
        self, node: Node, rel_type: str, direction: Direction = Direction.BOTH
    ) -> int:
        """Number of distinct neighbors over ``rel_type``."""
        return sum(1 for _ in self.neighbors(node, rel_type, direction))

    # ── Index ───────────────────────────────────────────────

    def index_node(self, node: Node, key: str, value: Any) -> None:
        """Add ``node`` to the unique index under (key, value)."""
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO node_index (key, value, node_id) VALUES (?, ?, ?)",
                (key, json.dumps(value), node.id),
            )

    def unindex_node(self, node: Node, key: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM node_index WHERE node_id = ? AND key = ?",
                (node.id, key),
            )

    def find_node_by_index(self, key: str, value: Any) -> Node | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT node_id FROM node_index WHERE key = ? AND value = ?",
                (key, json.dumps(value)),
            )
            row = cur.fetchone()
        return Node(row["node_id"]) if row else None

    def indexed_nodes(self, key: str) -> Iterator[Node]:
        """Every node indexed under ``key``, in id order."""
        with self._cursor() as cur:
            cur.execute(
                "SELECT node_id FROM node_index WHERE key = ? ORDER BY node_id",
                (key,),
            )
            rows = cur.fetchall()
        return (Node(row["node_id"]) for row in rows)

    def count_indexed(self, key: str) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) AS n FROM node_index WHERE key = ?", (key,))
            return cur.fetchone()["n"]

    # ── Lifecycle ───────────────────────────────────────────

    def close(self) -> None:
        """Close the thread-local connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            with self._lock:
                if conn in self._connections:
                    self._connections.remove(conn)
            conn.close()
            self._local.conn = None

    def shutdown(self) -> None:
        """Close every connection this store opened. The store is unusable afterwards."""
        with self._lock:
            connections, self._connections = self._connections, []
            self._closed = True
        for conn in connections:
            conn.close()
        self._local.conn = None
        logger.info(f"Graph store shut down ({len(connections)} connections closed)")

    def __enter__(self) -> SqliteGraphStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()
