"""Test configuration and fixtures."""

import copy
import hashlib
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pytest

from ami.exceptions import NothingToCommit, StoreError
from ami.store.base import MEMORY_COLUMNS, TABLES, Query, Repository, check_columns

_KEYS = {
    "memories": ("id",),
    "decisions": ("id",),
    "memory_links": ("from_id", "to_id"),
}

VOCABULARY = ["database", "python", "cache", "deploy", "test", "memory"]


class InMemoryRepository(Repository):
    """Repository fake keeping tables and version snapshots in plain lists.

    Args:
        fail_update: Optional predicate (table, keys, fields) -> bool; when it
            returns True the update raises StoreError
    """

    def __init__(self, fail_update: Optional[Callable[[str, Mapping, Mapping], bool]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
        self.commits: List[Dict[str, Any]] = []
        self.snapshots: List[Dict[str, Any]] = []
        self.fail_update = fail_update
        self._saved: Optional[Dict[str, List[Dict[str, Any]]]] = None
        self.closed = False

    def _key(self, table: str, row: Mapping[str, Any]):
        return tuple(row.get(k) for k in _KEYS[table])

    def _matching(self, table: str, keys: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return [r for r in self.tables[table] if all(r.get(k) == v for k, v in keys.items())]

    def query(self, table: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        query = query or Query()
        check_columns(table, query.columns())
        return query.apply(self.tables[table])

    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        check_columns(table, row)
        key = self._key(table, row)
        if any(self._key(table, r) == key for r in self.tables[table]):
            raise StoreError(f"duplicate key {key} in {table}", operation="insert")
        full = {column: None for column in TABLES[table]}
        full.update(row)
        self.tables[table].append(full)

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        keys: Sequence[str],
        update_fields: Optional[Sequence[str]] = None,
    ) -> None:
        check_columns(table, list(row) + list(keys))
        existing = self._matching(table, {k: row[k] for k in keys})
        if not existing:
            self.insert(table, row)
            return
        if update_fields is None:
            update_fields = [c for c in row if c not in keys]
        for column in update_fields:
            existing[0][column] = row[column]

    def update(self, table: str, keys: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        check_columns(table, list(keys) + list(fields))
        if self.fail_update and self.fail_update(table, keys, fields):
            raise StoreError("simulated update failure", operation="update")
        rows = self._matching(table, keys)
        for row in rows:
            row.update(fields)
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
        if self.fail_update and self.fail_update(table, keys, deltas):
            raise StoreError("simulated update failure", operation="increment")
        rows = self._matching(table, keys)
        for row in rows:
            for column, delta in deltas.items():
                value = (row.get(column) or 0) + delta
                if column in caps:
                    value = min(value, caps[column])
                row[column] = value
        return len(rows)

    def delete(self, table: str, keys: Mapping[str, Any]) -> int:
        check_columns(table, keys)
        rows = self._matching(table, keys)
        self.tables[table] = [r for r in self.tables[table] if r not in rows]
        return len(rows)

    def history(self, table: str, row_id: str) -> List[Dict[str, Any]]:
        return [dict(s) for s in reversed(self.snapshots) if s["id"] == row_id]

    def commit(self, message: str) -> str:
        tree = copy.deepcopy(self.tables)
        parent_tree = self.commits[-1]["tree"] if self.commits else {name: [] for name in TABLES}
        if tree == parent_tree:
            raise NothingToCommit()

        commit_hash = hashlib.sha1(f"{len(self.commits)}:{message}".encode()).hexdigest()
        commit_date = datetime.now(timezone.utc)
        previous = {r["id"]: r for r in parent_tree["memories"]}
        for row in tree["memories"]:
            if previous.get(row["id"]) == row:
                continue
            snapshot = {column: row.get(column) for column in MEMORY_COLUMNS}
            snapshot.update(commit_hash=commit_hash, committer="tester", commit_date=commit_date)
            self.snapshots.append(snapshot)

        self.commits.append({"hash": commit_hash, "message": message, "tree": tree})
        return commit_hash

    def head(self) -> str:
        return self.commits[-1]["hash"] if self.commits else ""

    @property
    def messages(self) -> List[str]:
        return [c["message"] for c in self.commits]

    def begin(self) -> None:
        self._saved = copy.deepcopy(self.tables)

    def rollback_transaction(self) -> None:
        if self._saved is not None:
            self.tables = self._saved
        self._saved = None

    def end(self) -> None:
        self._saved = None

    def close(self) -> None:
        self.closed = True


def keyword_embedding(text: str) -> List[float]:
    """Deterministic bag-of-words vector over a tiny vocabulary."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY]


def word_count(text: str) -> int:
    return len(text.split())


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the user's config, data dir and API keys."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path / "home")
    for var in ("AMI_DB_PATH", "AMI_GLOBAL_DB_PATH", "OPENAI_API_KEY", "MATTERMOST_URL", "MATTERMOST_TOKEN"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def manager(repo):
    """MemoryManager over the in-memory repository with deterministic helpers."""
    from ami.config import Config
    from ami.memory.manager import MemoryManager

    return MemoryManager(repo, config=Config(), embedder=keyword_embedding, token_counter=word_count)


@pytest.fixture
def plain_manager(repo):
    """MemoryManager with no embedding provider at all."""
    from ami.config import Config
    from ami.memory.manager import MemoryManager

    return MemoryManager(repo, config=Config(embedding_model=None), token_counter=word_count)


@pytest.fixture
def cli_runner():
    """Create a CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_manager(manager):
    """Route every CLI command to the in-memory manager."""
    from unittest.mock import patch

    with patch("ami.memory.manager.get_memory_manager", return_value=manager):
        yield manager
