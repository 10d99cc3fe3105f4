"""Ordering of candidate memories by decay, semantic similarity, or keystone score."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from ami.memory.schema import Memory
from ami.memory.scoring import keystone_score, memory_decay_score
from ami.memory.similarity import cosine_similarity

logger = logging.getLogger(__name__)


def _truncate(items: list, limit: Optional[int]) -> list:
    if limit is None or limit < 0:
        return items
    return items[:limit]


def rank_by_similarity(
    query_vector: Sequence[float],
    memories: Iterable[Memory],
    limit: Optional[int] = None,
) -> List[Tuple[Memory, float]]:
    """Order memories by cosine similarity to a query vector.

    Memories without an embedding (or with a different dimension) are left out
    entirely rather than scored as zero. The sort is stable, so equal scores
    keep their incoming order, and the limit is applied after sorting.

    Returns:
        (memory, similarity) pairs, most similar first
    """
    scored: List[Tuple[Memory, float]] = []
    for memory in memories:
        if not memory.embedding:
            continue
        if len(memory.embedding) != len(query_vector):
            logger.debug(
                "Skipping memory %s: embedding dimension %d != %d",
                memory.id,
                len(memory.embedding),
                len(query_vector),
            )
            continue
        scored.append((memory, cosine_similarity(query_vector, memory.embedding)))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return _truncate(scored, limit)


def rank_by_decay(
    memories: Iterable[Memory],
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Tuple[Memory, float]]:
    """Order memories by decay score, highest first (stable on ties)."""
    scored = [(memory, memory_decay_score(memory, now)) for memory in memories]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return _truncate(scored, limit)


def rank_by_keystone(memories: Iterable[Memory], limit: Optional[int] = None) -> List[Memory]:
    ranked = sorted(memories, key=keystone_score, reverse=True)
    return _truncate(ranked, limit)


def rank_by_priority(memories: Iterable[Memory], limit: Optional[int] = None) -> List[Memory]:
    """Default recall order: priority desc, then most recently accessed."""

    def key(memory: Memory):
        accessed = memory.accessed_at.timestamp() if memory.accessed_at else 0.0
        return (memory.priority, accessed)

    return _truncate(sorted(memories, key=key, reverse=True), limit)
