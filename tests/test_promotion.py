"""Tests for promotion to the global store."""

from conftest import InMemoryRepository

from ami.memory.promotion import promote_memory, select_promotion_candidates, successful_memory_ids
from ami.memory.schema import Category, Decision, Memory, Status


def mem(memory_id, access_count=6, category=Category.SEMANTIC, status=Status.VERIFIED, priority=0.5):
    return Memory(
        id=memory_id,
        content=f"fact {memory_id}",
        access_count=access_count,
        category=category,
        status=status,
        priority=priority,
    )


def decision(outcome, *memory_ids):
    return Decision(id=f"d-{outcome}", decision_text="x", memory_ids=list(memory_ids), outcome=outcome)


class TestCandidateSelection:
    def test_successful_ids(self):
        decisions = [decision(0.9, "a", "b"), decision(0.5, "c"), decision(0.8, "d")]
        assert successful_memory_ids(decisions) == {"a", "b", "d"}

    def test_all_criteria_required(self):
        memories = [
            mem("ok"),
            mem("rarely-used", access_count=4),
            mem("unproven"),
            mem("episodic", category=Category.EPISODIC),
            mem("working", category=Category.WORKING),
            mem("deprecated", status=Status.DEPRECATED),
            mem("core", category=Category.CORE),
        ]
        decisions = [decision(0.95, "ok", "rarely-used", "episodic", "working", "deprecated", "core")]

        candidates = select_promotion_candidates(memories, decisions)
        assert {m.id for m in candidates} == {"ok", "core"}

    def test_order_by_access_then_priority(self):
        memories = [
            mem("a", access_count=6, priority=0.9),
            mem("b", access_count=10, priority=0.1),
            mem("c", access_count=6, priority=0.95),
        ]
        candidates = select_promotion_candidates(memories, [decision(1.0, "a", "b", "c")])
        assert [m.id for m in candidates] == ["b", "c", "a"]

    def test_thresholds_are_configurable(self):
        memories = [mem("a", access_count=2)]
        decisions = [decision(0.6, "a")]

        assert select_promotion_candidates(memories, decisions) == []
        assert [m.id for m in select_promotion_candidates(memories, decisions, 2, 0.6)] == ["a"]


class TestPromoteMemory:
    def test_copies_into_global_store(self):
        global_repo = InMemoryRepository()
        memory = mem("m1")
        memory.tags = ["shared"]

        promote_memory(memory, global_repo)

        rows = global_repo.query("memories")
        assert len(rows) == 1
        assert rows[0]["content"] == "fact m1"
        assert rows[0]["tags"] == '["shared"]'
        assert global_repo.messages == ["Promoted memory m1 from project store"]

    def test_existing_global_row_refreshes_content_and_priority(self):
        global_repo = InMemoryRepository()
        promote_memory(mem("m1", priority=0.5), global_repo)

        changed = mem("m1", priority=0.9, category=Category.CORE)
        changed.content = "refined fact"
        promote_memory(changed, global_repo)

        rows = global_repo.query("memories")
        assert len(rows) == 1
        assert rows[0]["content"] == "refined fact"
        assert rows[0]["priority"] == 0.9
        assert rows[0]["category"] == "semantic"

    def test_repeat_promotion_is_quiet(self):
        global_repo = InMemoryRepository()
        memory = mem("m1")
        promote_memory(memory, global_repo)
        # Only timestamps would differ, and those aren't refreshed
        promote_memory(memory, global_repo)
        assert len(global_repo.commits) == 1


class TestManagerPromotion:
    def test_candidates_and_promote(self, manager, repo):
        memory = manager.add("Always pin dependencies", category="semantic")
        repo.update("memories", {"id": memory.id}, {"access_count": 7})
        d = manager.track_decision("release", [memory.id], "Pin everything")
        manager.record_outcome(d.id, 0.9)

        candidates = manager.promotion_candidates()
        assert [m.id for m in candidates] == [memory.id]

        global_repo = InMemoryRepository()
        before = manager.get(memory.id)
        manager.promote(memory.id, global_repo)

        assert global_repo.query("memories")[0]["id"] == memory.id
        assert manager.get(memory.id) == before
