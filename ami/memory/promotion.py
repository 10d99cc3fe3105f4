"""Promotion of proven project memories into the shared global store."""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Set

from ami.exceptions import NothingToCommit
from ami.memory.rows import memory_to_row, to_store_time
from ami.memory.schema import Category, Decision, Memory, Status
from ami.store.base import Repository

logger = logging.getLogger(__name__)

DEFAULT_MIN_ACCESS_COUNT = 5
DEFAULT_MIN_OUTCOME = 0.8
PROMOTABLE_CATEGORIES = (Category.SEMANTIC, Category.CORE)

# Columns copied to the global store; existing global rows only refresh these
PROMOTED_COLUMNS = ("id", "content", "owner_id", "team_id", "category", "priority", "source", "tags")
PROMOTION_REFRESH_COLUMNS = ("content", "priority")


def successful_memory_ids(decisions: Iterable[Decision], min_outcome: float = DEFAULT_MIN_OUTCOME) -> Set[str]:
    """Ids referenced by any decision whose outcome reached ``min_outcome``."""
    ids: Set[str] = set()
    for decision in decisions:
        if decision.outcome >= min_outcome:
            ids.update(decision.memory_ids)
    return ids


def select_promotion_candidates(
    memories: Iterable[Memory],
    decisions: Iterable[Decision],
    min_access_count: int = DEFAULT_MIN_ACCESS_COUNT,
    min_outcome: float = DEFAULT_MIN_OUTCOME,
) -> List[Memory]:
    """Select memories that have earned a place in the global store.

    A memory qualifies only if all of these hold:

    - accessed at least ``min_access_count`` times
    - referenced by at least one decision with outcome >= ``min_outcome``
    - category is semantic or core
    - status is verified

    Args:
        memories: Candidate memories from the project store
        decisions: All tracked decisions
        min_access_count: Minimum access count
        min_outcome: Minimum decision outcome

    Returns:
        Qualifying memories, most accessed first, then highest priority
    """
    proven = successful_memory_ids(decisions, min_outcome)
    candidates = [
        m
        for m in memories
        if m.access_count >= min_access_count
        and m.id in proven
        and m.category in PROMOTABLE_CATEGORIES
        and m.status == Status.VERIFIED
    ]
    candidates.sort(key=lambda m: (m.access_count, m.priority), reverse=True)
    return candidates


def promote_memory(memory: Memory, global_repo: Repository, source_label: str = "project") -> None:
    """Copy a memory into the global repository and commit it there.

    A memory that already exists globally keeps its row; only content and
    priority are refreshed. The local copy is never modified.
    """
    full_row = memory_to_row(memory)
    row = {column: full_row[column] for column in PROMOTED_COLUMNS}
    now = to_store_time(datetime.now(timezone.utc))
    row["created_at"] = now
    row["accessed_at"] = now
    global_repo.upsert("memories", row, keys=("id",), update_fields=PROMOTION_REFRESH_COLUMNS)

    try:
        global_repo.commit(f"Promoted memory {memory.id} from {source_label} store")
    except NothingToCommit:
        logger.info(f"Memory {memory.id} already up to date in global store")
