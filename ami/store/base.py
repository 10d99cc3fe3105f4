"""Versioned record store interface.

The engine never builds SQL. It asks for rows through a ``Query`` (equality,
range and substring filters plus ordering and a limit) and writes through
the narrow ``Repository`` methods below. Every value travels as a bound
parameter; column names are checked against the table's known columns.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ami.exceptions import NothingToCommit, StoreError

__all__ = ["TABLES", "NothingToCommit", "Query", "Repository", "check_columns"]

MEMORY_COLUMNS = (
    "id",
    "content",
    "owner_id",
    "team_id",
    "category",
    "priority",
    "created_at",
    "accessed_at",
    "access_count",
    "source",
    "tags",
    "embedding",
    "status",
)

TABLES: Dict[str, Tuple[str, ...]] = {
    "memories": MEMORY_COLUMNS,
    "decisions": (
        "id",
        "task_id",
        "decision_text",
        "memory_ids",
        "outcome",
        "feedback",
        "commit_hash",
        "created_at",
    ),
    "memory_links": ("from_id", "to_id", "relation"),
}


def check_columns(table: str, columns) -> None:
    """Reject unknown tables and columns before they get near a statement."""
    known = TABLES.get(table)
    if known is None:
        raise StoreError(f"unknown table: {table}", operation="query")
    for column in columns:
        if column not in known:
            raise StoreError(f"unknown column {column!r} for table {table}", operation="query")


@dataclass
class Query:
    """Declarative row filter.

    Attributes:
        where: column == value
        where_not: column != value
        where_gte: column >= value
        where_in: column IN values
        any_of: rows matching at least one of these column == value pairs
        contains: case-sensitive substring match on a text column
        order_by: (column, descending) pairs, applied in order
        limit: maximum rows, None for all
    """

    where: Dict[str, Any] = field(default_factory=dict)
    where_not: Dict[str, Any] = field(default_factory=dict)
    where_gte: Dict[str, Any] = field(default_factory=dict)
    where_in: Dict[str, Sequence[Any]] = field(default_factory=dict)
    any_of: List[Tuple[str, Any]] = field(default_factory=list)
    contains: Dict[str, str] = field(default_factory=dict)
    order_by: List[Tuple[str, bool]] = field(default_factory=list)
    limit: Optional[int] = None

    def columns(self) -> List[str]:
        cols = list(self.where) + list(self.where_not) + list(self.where_gte) + list(self.where_in)
        cols += [column for column, _ in self.any_of]
        cols += list(self.contains)
        cols += [column for column, _ in self.order_by]
        return cols

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the filter against an in-memory row."""
        for column, value in self.where.items():
            if row.get(column) != value:
                return False
        for column, value in self.where_not.items():
            if row.get(column) == value:
                return False
        for column, value in self.where_gte.items():
            current = row.get(column)
            if current is None or current < value:
                return False
        for column, values in self.where_in.items():
            if row.get(column) not in values:
                return False
        if self.any_of and not any(row.get(column) == value for column, value in self.any_of):
            return False
        for column, needle in self.contains.items():
            if needle not in str(row.get(column) or ""):
                return False
        return True

    def apply(self, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Filter, order and limit in-memory rows the same way SQL would."""
        result = [dict(row) for row in rows if self.matches(row)]
        # Stable multi-key sort: apply keys last to first
        for column, descending in reversed(self.order_by):
            present = [r for r in result if r.get(column) is not None]
            missing = [r for r in result if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=descending)
            result = present + missing
        if self.limit is not None and self.limit >= 0:
            result = result[: self.limit]
        return result


class Repository(ABC):
    """A versioned, transactional record store.

    Writes accumulate in the working state until ``commit`` records them as a
    new version. ``commit`` raises ``NothingToCommit`` if nothing changed
    since the last version; callers that treat a commit as best-effort catch it.
    """

    @abstractmethod
    def query(self, table: str, query: Optional[Query] = None) -> List[Dict[str, Any]]:
        """Return raw rows from a table."""

    @abstractmethod
    def insert(self, table: str, row: Mapping[str, Any]) -> None:
        """Insert a row. Raises StoreError on a duplicate key."""

    @abstractmethod
    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        keys: Sequence[str],
        update_fields: Optional[Sequence[str]] = None,
    ) -> None:
        """Insert a row, or update ``update_fields`` on the existing row with the same keys.

        ``update_fields`` of None updates every non-key column.
        """

    @abstractmethod
    def update(self, table: str, keys: Mapping[str, Any], fields: Mapping[str, Any]) -> int:
        """Update matching rows. Returns the number of rows changed."""

    @abstractmethod
    def increment(
        self,
        table: str,
        keys: Mapping[str, Any],
        deltas: Mapping[str, float],
        caps: Optional[Mapping[str, float]] = None,
    ) -> int:
        """Add ``deltas`` to numeric columns of matching rows in one statement.

        A column listed in ``caps`` never ends above its cap. Returns the
        number of rows changed.
        """

    @abstractmethod
    def delete(self, table: str, keys: Mapping[str, Any]) -> int:
        """Delete matching rows. Returns the number of rows removed."""

    @abstractmethod
    def history(self, table: str, row_id: str) -> List[Dict[str, Any]]:
        """Return versioned snapshots of a row, newest first.

        Each snapshot carries the row's columns plus ``commit_hash``,
        ``committer`` and ``commit_date``.
        """

    @abstractmethod
    def commit(self, message: str) -> str:
        """Record the working state as a new version and return its hash."""

    @abstractmethod
    def head(self) -> str:
        """Hash of the latest version, or "" before the first commit."""

    @abstractmethod
    def begin(self) -> None:
        pass

    @abstractmethod
    def rollback_transaction(self) -> None:
        pass

    @abstractmethod
    def end(self) -> None:
        pass

    @contextmanager
    def transaction(self) -> Iterator["Repository"]:
        """Group writes so they all apply or none do."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        else:
            self.end()

    def close(self) -> None:
        pass
