"""DuckDB-backed versioned repository.

Versioning is a thin layer on top of ordinary tables:

- ``commits`` holds one row per version (hash, parent, message, committer,
  date, and a digest of the full working state at that point).
- ``memories_history`` holds a snapshot of every memory row that changed in
  a given commit, which is what ``history`` and rollback read from.

A commit whose state digest equals the head's is refused with
``NothingToCommit``.
"""

import getpass
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ami.exceptions import NothingToCommit, StoreError
from ami.store.base import MEMORY_COLUMNS, TABLES, Query, Repository, check_columns

logger = logging.getLogger(__name__)

_PRIMARY_KEYS = {
    "memories": ("id",),
    "decisions": ("id",),
    "memory_links": ("from_id", "to_id"),
}

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS memories (
        id VARCHAR PRIMARY KEY,
        content VARCHAR NOT NULL,
        owner_id VARCHAR DEFAULT 'system',
        team_id VARCHAR DEFAULT 'system',
        category VARCHAR DEFAULT 'episodic',
        priority DOUBLE DEFAULT 0.5,
        created_at TIMESTAMP,
        accessed_at TIMESTAMP,
        access_count INTEGER DEFAULT 0,
        source VARCHAR DEFAULT '',
        tags VARCHAR DEFAULT '[]',
        embedding BLOB,
        status VARCHAR DEFAULT 'verified'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS decisions (
        id VARCHAR PRIMARY KEY,
        task_id VARCHAR,
        decision_text VARCHAR NOT NULL,
        memory_ids VARCHAR DEFAULT '[]',
        outcome DOUBLE DEFAULT 0.0,
        feedback VARCHAR DEFAULT '',
        commit_hash VARCHAR DEFAULT '',
        created_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_links (
        from_id VARCHAR NOT NULL,
        to_id VARCHAR NOT NULL,
        relation VARCHAR DEFAULT 'related',
        PRIMARY KEY (from_id, to_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS commits (
        hash VARCHAR PRIMARY KEY,
        seq INTEGER NOT NULL,
        parent VARCHAR,
        message VARCHAR,
        committer VARCHAR,
        created_at TIMESTAMP,
        tree VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memories_history (
        commit_hash VARCHAR NOT NULL,
        seq INTEGER NOT NULL,
        row_digest VARCHAR,
        id VARCHAR NOT NULL,
        content VARCHAR,
        owner_id VARCHAR,
        team_id VARCHAR,
        category VARCHAR,
        priority DOUBLE,
        created_at TIMESTAMP,
        accessed_at TIMESTAMP,
        access_count INTEGER,
        source VARCHAR,
        tags VARCHAR,
        embedding BLOB,
        status VARCHAR
    )
    """,
]


def _digest(values) -> str:
    return hashlib.sha1(repr(values).encode("utf-8")).hexdigest()


class DuckDBRepository(Repository):
    """Repository over a single DuckDB database file (or ``:memory:``)."""

    def __init__(self, db_path, committer: Optional[str] = None):
        """Open (and create if needed) a repository.

        Args:
            db_path: Path to the DuckDB file, or ":memory:"
            committer: Name recorded on commits, defaults to the login user
        """
        try:
            import duckdb
        except ImportError as e:
            raise ImportError("duckdb is required for the memory store. Install with: pip install duckdb") from e

        self._duckdb = duckdb
        self.db_path = db_path
        self.committer = committer or _default_committer()
        self._in_transaction = False

        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = duckdb.connect(str(db_path))
            for statement in _SCHEMA:
                self.conn.execute(statement)
        except duckdb.Error as e:
            raise StoreError(f"failed to open store at {db_path}: {e}", operation="open") from e

    # -- helpers -----------------------------------------------------------

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            cursor = self.conn.execute(sql, list(params))
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]
        except self._duckdb.Error as e:
            raise StoreError(f"query failed: {e}", operation="query") from e

    def _execute(self, sql: str, params: Sequence[Any], operation: str, fetch: bool = False) -> list:
        try:
            cursor = self.conn.execute(sql, list(params))
            return cursor.fetchall() if fetch else []
        except self._duckdb.Error as e:
            raise StoreError(f"{operation} failed: {e}", operation=operation) from e

    @staticmethod
    def _where(keys: Mapping[str, Any]):
        clauses = [f"{column} = ?" for column in keys]
        return " AND ".join(clauses), list(keys.values())

    # -- reads -------------------------------------------------------------

    def query(self, table: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        query = query or Query()
        check_columns(table, query.columns())

        clauses = []
        params: List[Any] = []
        for column, value in query.where.items():
            clauses.append(f"{column} = ?")
            params.append(value)
        for column, value in query.where_not.items():
            clauses.append(f"{column} IS DISTINCT FROM ?")
            params.append(value)
        for column, value in query.where_gte.items():
            clauses.append(f"{column} >= ?")
            params.append(value)
        for column, values in query.where_in.items():
            if not values:
                clauses.append("FALSE")
                continue
            clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if query.any_of:
            clauses.append("(" + " OR ".join(f"{column} = ?" for column, _ in query.any_of) + ")")
            params.extend(value for _, value in query.any_of)
        for column, needle in query.contains.items():
            clauses.append(f"contains({column}, ?)")
            params.append(needle)

        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if query.order_by:
            sql += " ORDER BY " + ", ".join(
                f"{column} {'DESC' if descending else 'ASC'} NULLS LAST" for column, descending in query.order_by
            )
        if query.limit is not None and query.limit >= 0:
            sql += f" LIMIT {int(query.limit)}"

        return self._fetch(sql, params)

    def history(self, table: str, row_id: str) -> List[Dict[str, Any]]:
        if table != "memories":
            raise StoreError(f"history is not tracked for table {table}", operation="history")
        columns = ", ".join(f"h.{c}" for c in MEMORY_COLUMNS)
        return self._fetch(
            f"""
            SELECT {columns}, h.commit_hash, c.committer, c.created_at AS commit_date
            FROM memories_history h
            JOIN commits c ON c.hash = h.commit_hash
            WHERE h.id = ?
            ORDER BY h.seq DESC
            """,
            [row_id],
        )

    def head(self) -> str:
        row = self._head_row()
        return row["hash"] if row else ""

    def _head_row(self) -> Optional[Dict[str, Any]]:
        rows = self._fetch("SELECT * FROM commits ORDER BY seq DESC LIMIT 1")
        return rows[0] if rows else None

    # -- writes ------------------------------------------------------------

    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        check_columns(table, row)
        columns = list(row)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})"
        self._execute(sql, [row[c] for c in columns], "insert")

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        keys: Sequence[str],
        update_fields: Optional[Sequence[str]] = None,
    ) -> None:
        check_columns(table, list(row) + list(keys))
        columns = list(row)
        if update_fields is None:
            update_fields = [c for c in columns if c not in keys]
        check_columns(table, update_fields)

        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT ({', '.join(keys)}) "
        )
        if update_fields:
            sql += "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in update_fields)
        else:
            sql += "DO NOTHING"
        self._execute(sql, [row[c] for c in columns], "upsert")

    def update(self, table: str, keys: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        check_columns(table, list(keys) + list(fields))
        if not fields:
            return 0
        where_sql, where_params = self._where(keys)
        set_sql = ", ".join(f"{c} = ?" for c in fields)
        key_column = _PRIMARY_KEYS[table][0]
        rows = self._execute(
            f"UPDATE {table} SET {set_sql} WHERE {where_sql} RETURNING {key_column}",
            list(fields.values()) + where_params,
            "update",
            fetch=True,
        )
        return len(rows)

    def increment(
        self,
        table: str,
        keys: Mapping[str, Any],
        deltas: Mapping[str, float],
        caps: Optional[Mapping[str, float]] = None,
    ) -> int:
        caps = caps or {}
        check_columns(table, list(keys) + list(deltas) + list(caps))
        if not deltas:
            return 0
        assignments = []
        params: List[Any] = []
        for column, delta in deltas.items():
            if column in caps:
                assignments.append(f"{column} = LEAST(COALESCE({column}, 0) + ?, ?)")
                params.extend([delta, caps[column]])
            else:
                assignments.append(f"{column} = COALESCE({column}, 0) + ?")
                params.append(delta)
        where_sql, where_params = self._where(keys)
        key_column = _PRIMARY_KEYS[table][0]
        rows = self._execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE {where_sql} RETURNING {key_column}",
            params + where_params,
            "increment",
            fetch=True,
        )
        return len(rows)

    def delete(self, table: str, keys: Mapping[str, Any]) -> int:
        check_columns(table, keys)
        where_sql, where_params = self._where(keys)
        key_column = _PRIMARY_KEYS[table][0]
        rows = self._execute(
            f"DELETE FROM {table} WHERE {where_sql} RETURNING {key_column}", where_params, "delete", fetch=True
        )
        return len(rows)

    # -- versioning --------------------------------------------------------

    def _tree_digest(self) -> str:
        parts = []
        for table in sorted(TABLES):
            order = ", ".join(_PRIMARY_KEYS[table])
            rows = self._fetch(f"SELECT * FROM {table} ORDER BY {order}")
            parts.append((table, [tuple(sorted(r.items())) for r in rows]))
        return _digest(parts)

    def commit(self, message: str) -> str:
        own_transaction = not self._in_transaction
        if own_transaction:
            self.begin()
        try:
            commit_hash = self._commit(message)
        except BaseException:
            if own_transaction:
                self.rollback_transaction()
            raise
        if own_transaction:
            self.end()
        return commit_hash

    def _commit(self, message: str) -> str:
        tree = self._tree_digest()
        head = self._head_row()
        parent_tree = head["tree"] if head else _EMPTY_TREE
        if tree == parent_tree:
            raise NothingToCommit()

        seq = (head["seq"] + 1) if head else 1
        parent = head["hash"] if head else None
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        commit_hash = _digest((parent, tree, message, self.committer, now.isoformat()))

        self._execute(
            "INSERT INTO commits (hash, seq, parent, message, committer, created_at, tree) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [commit_hash, seq, parent, message, self.committer, now, tree],
            "commit",
        )

        latest = {}
        for row in self._fetch("SELECT id, row_digest FROM memories_history ORDER BY seq"):
            latest[row["id"]] = row["row_digest"]

        changed = 0
        columns = ", ".join(MEMORY_COLUMNS)
        placeholders = ", ".join("?" for _ in MEMORY_COLUMNS)
        for row in self._fetch(f"SELECT {columns} FROM memories"):
            row_digest = _digest([row[c] for c in MEMORY_COLUMNS])
            if latest.get(row["id"]) == row_digest:
                continue
            self._execute(
                f"INSERT INTO memories_history (commit_hash, seq, row_digest, {columns}) "
                f"VALUES (?, ?, ?, {placeholders})",
                [commit_hash, seq, row_digest] + [row[c] for c in MEMORY_COLUMNS],
                "commit",
            )
            changed += 1

        logger.debug(f"Committed {commit_hash[:8]} ({changed} memory snapshots): {message}")
        return commit_hash

    # -- transactions ------------------------------------------------------

    def begin(self) -> None:
        if self._in_transaction:
            raise StoreError("transaction already in progress", operation="begin")
        self._execute("BEGIN TRANSACTION", [], "begin")
        self._in_transaction = True

    def rollback_transaction(self) -> None:
        self._in_transaction = False
        try:
            self.conn.execute("ROLLBACK")
        except self._duckdb.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def end(self) -> None:
        self._in_transaction = False
        self._execute("COMMIT", [], "commit")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None


def _default_committer() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "ami"


_EMPTY_TREE = _digest([(table, []) for table in sorted(TABLES)])
