"""Tests for row normalization and the declarative Query."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ami.exceptions import StoreError
from ami.memory.rows import (
    EPOCH,
    as_float,
    as_int,
    as_tags,
    as_time,
    decision_to_row,
    memory_to_row,
    row_to_decision,
    row_to_link,
    row_to_memory,
)
from ami.memory.schema import Category, Decision, Memory, Status
from ami.memory.similarity import encode_embedding
from ami.store.base import Query, check_columns


class TestScalarCoercion:
    def test_floats(self):
        assert as_float(Decimal("0.75")) == 0.75
        assert as_float("0.3") == 0.3
        assert as_float(2) == 2.0
        assert as_float(None) == 0.0
        assert as_float("garbage") == 0.0

    def test_ints(self):
        assert as_int("7") == 7
        assert as_int(3.9) == 3
        assert as_int(None) == 0
        assert as_int("x") == 0

    def test_times(self):
        expected = datetime(2024, 12, 1, 10, 30, tzinfo=timezone.utc)
        assert as_time("2024-12-01 10:30:00") == expected
        assert as_time("2024-12-01T10:30:00Z") == expected
        assert as_time(datetime(2024, 12, 1, 10, 30)) == expected
        assert as_time(expected.timestamp()) == expected
        assert as_time(None) is None
        assert as_time("yesterday-ish") is None

    def test_tags(self):
        assert as_tags('["a", "b"]') == ["a", "b"]
        assert as_tags(["a", ""]) == ["a"]
        assert as_tags("a, b") == ["a", "b"]
        assert as_tags("[]") == []
        assert as_tags(None) == []


class TestRowMapping:
    def test_full_memory_row(self):
        row = {
            "id": "m1",
            "content": "Use DuckDB",
            "owner_id": "agent-1",
            "team_id": "core-team",
            "category": "semantic",
            "priority": Decimal("0.8"),
            "created_at": datetime(2024, 1, 1),
            "accessed_at": datetime(2024, 1, 2),
            "access_count": 4,
            "source": "review",
            "tags": '["db"]',
            "embedding": encode_embedding([0.5, 0.25]),
            "status": "under_review",
        }
        memory = row_to_memory(row)

        assert memory.category == Category.SEMANTIC
        assert memory.priority == 0.8
        assert memory.access_count == 4
        assert memory.tags == ["db"]
        assert memory.embedding == [0.5, 0.25]
        assert memory.status == Status.UNDER_REVIEW
        assert memory.accessed_at == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_sparse_memory_row_uses_defaults(self):
        memory = row_to_memory({"id": "m2", "content": "bare"})

        assert memory.owner_id == "system"
        assert memory.category == Category.EPISODIC
        assert memory.status == Status.VERIFIED
        assert memory.priority == 0.0
        assert memory.tags == []
        assert memory.embedding is None
        assert memory.accessed_at == EPOCH

    def test_missing_accessed_at_falls_back_to_created_at(self):
        memory = row_to_memory({"id": "m3", "content": "x", "created_at": "2024-05-05 00:00:00"})
        assert memory.accessed_at == datetime(2024, 5, 5, tzinfo=timezone.utc)

    def test_unknown_category_and_status(self):
        memory = row_to_memory({"id": "m4", "content": "x", "category": "weird", "status": "??"})
        assert memory.category == Category.EPISODIC
        assert memory.status == Status.VERIFIED

    def test_memory_to_row_stores_naive_utc_and_json_tags(self):
        memory = Memory(
            id="m5",
            content="x",
            tags=["a"],
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            embedding=[1.0],
        )
        row = memory_to_row(memory)

        assert row["tags"] == json.dumps(["a"])
        assert row["created_at"] == datetime(2024, 1, 1)
        assert row["embedding"] == encode_embedding([1.0])
        assert row["category"] == "episodic"

    def test_decision_round_trip(self):
        decision = Decision(id="d1", task_id="t", decision_text="ship it", memory_ids=["a", "b"], outcome=0.9)
        restored = row_to_decision(decision_to_row(decision))
        assert restored.memory_ids == ["a", "b"]
        assert restored.outcome == 0.9

    def test_link_relation_defaults(self):
        assert row_to_link({"from_id": "a", "to_id": "b", "relation": None}).relation == "related"

    def test_embedding_is_excluded_from_dumps(self):
        memory = Memory(id="m6", content="x", embedding=[1.0, 2.0])
        assert "embedding" not in memory.model_dump()


class TestQuery:
    ROWS = [
        {"id": "a", "priority": 0.5, "status": "verified", "content": "alpha", "category": "core"},
        {"id": "b", "priority": 0.9, "status": "deprecated", "content": "beta", "category": "semantic"},
        {"id": "c", "priority": None, "status": "verified", "content": "alphabet", "category": "core"},
        {"id": "d", "priority": 0.9, "status": None, "content": "delta", "category": "working"},
    ]

    def test_equality_and_exclusion(self):
        query = Query(where={"category": "core"}, where_not={"status": "deprecated"})
        assert [r["id"] for r in query.apply(self.ROWS)] == ["a", "c"]

    def test_where_not_keeps_nulls(self):
        query = Query(where_not={"status": "deprecated"})
        assert [r["id"] for r in query.apply(self.ROWS)] == ["a", "c", "d"]

    def test_contains_and_gte(self):
        assert [r["id"] for r in Query(contains={"content": "alpha"}).apply(self.ROWS)] == ["a", "c"]
        assert [r["id"] for r in Query(where_gte={"priority": 0.6}).apply(self.ROWS)] == ["b", "d"]

    def test_any_of_and_where_in(self):
        assert [r["id"] for r in Query(any_of=[("id", "a"), ("id", "d")]).apply(self.ROWS)] == ["a", "d"]
        assert [r["id"] for r in Query(where_in={"category": ["working"]}).apply(self.ROWS)] == ["d"]

    def test_order_nulls_last_and_stable(self):
        query = Query(order_by=[("priority", True)], limit=3)
        assert [r["id"] for r in query.apply(self.ROWS)] == ["b", "d", "a"]

    def test_multi_key_order(self):
        query = Query(order_by=[("priority", True), ("id", True)])
        assert [r["id"] for r in query.apply(self.ROWS)] == ["d", "b", "a", "c"]

    def test_unknown_column_rejected(self):
        with pytest.raises(StoreError, match="unknown column"):
            check_columns("memories", ["id", "content; DROP TABLE memories"])

    def test_unknown_table_rejected(self):
        with pytest.raises(StoreError, match="unknown table"):
            check_columns("secrets", ["id"])
