"""Relevance scoring for memories.

Decay score:
    (priority * (access_count + 1)) / (log10(seconds_since_accessed + 10) * category_decay)

Frequently accessed, high-priority memories decay slower; core facts decay
slowest and episodic ones fastest. The +10 offset keeps the logarithm at 1
for a memory touched just now.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from ami.memory.schema import Category, Memory

CATEGORY_DECAY = {
    Category.CORE: 0.5,
    Category.SEMANTIC: 1.0,
    Category.EPISODIC: 2.0,
}
DEFAULT_CATEGORY_DECAY = 1.5  # working, and anything unrecognized


def category_decay(category: Category) -> float:
    return CATEGORY_DECAY.get(category, DEFAULT_CATEGORY_DECAY)


def decay_score(
    priority: float,
    access_count: int,
    accessed_at: Optional[datetime],
    category: Category,
    now: Optional[datetime] = None,
) -> float:
    """Compute the time- and access-weighted relevance score.

    Args:
        priority: Memory priority in [0, 1]
        access_count: Number of reinforcements (>= 0)
        accessed_at: Last access time (aware or naive UTC); None counts as "just now"
        category: Memory category
        now: Reference time, defaults to the current UTC time

    Returns:
        Non-negative score; higher means more relevant
    """
    if now is None:
        now = datetime.now(timezone.utc)

    elapsed = 0.0
    if accessed_at is not None:
        elapsed = (_aware(now) - _aware(accessed_at)).total_seconds()
    # Clock skew: accessed_at in the future must not go below log10(10)
    elapsed = max(elapsed, 0.0)

    score = (max(priority, 0.0) * (max(access_count, 0) + 1)) / (
        math.log10(elapsed + 10) * category_decay(category)
    )
    return score


def memory_decay_score(memory: Memory, now: Optional[datetime] = None) -> float:
    return decay_score(memory.priority, memory.access_count, memory.accessed_at, memory.category, now)


def keystone_score(memory: Memory) -> float:
    """Time-independent foundational importance: priority * 2 + access_count / 10."""
    return memory.priority * 2 + memory.access_count / 10.0


def _aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
