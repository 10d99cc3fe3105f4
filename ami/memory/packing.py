"""Token-budget-aware context packing."""

import logging
from typing import Callable, Iterable, List, Optional

from ami.memory.schema import Memory

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_MODEL = "gpt-4"  # cl100k_base


def count_tokens(text: str, model: str = DEFAULT_TOKEN_MODEL) -> int:
    """Count tokens using litellm, falling back to len//4."""
    try:
        from litellm import token_counter

        return token_counter(model=model, text=text)
    except Exception as e:
        logger.debug("Token counter unavailable (%s), estimating from length", e)
        return len(text) // 4


def pack_context(
    core_memories: Iterable[Memory],
    task_memories: Iterable[Memory],
    token_budget: int,
    token_counter: Optional[Callable[[str], int]] = None,
) -> List[Memory]:
    """Greedily pack memories into a token budget.

    Core memories are walked first, then task memories, each in the order
    given. A memory is taken only if it fits in what's left of the budget;
    otherwise it is skipped (no partial inclusion, no reordering). Ids are
    deduplicated across both lists.

    Args:
        core_memories: Foundational memories, packed first
        task_memories: Task-relevant memories, packed after core
        token_budget: Maximum total tokens
        token_counter: Callable returning the token count of a text

    Returns:
        Selected memories in packing order
    """
    if token_budget <= 0:
        return []

    counter = token_counter or count_tokens
    seen = set()
    packed: List[Memory] = []
    used = 0

    for memories in (core_memories, task_memories):
        for memory in memories:
            if memory.id in seen:
                continue
            tokens = counter(memory.content)
            if used + tokens > token_budget:
                continue
            packed.append(memory)
            seen.add(memory.id)
            used += tokens

    logger.debug("Packed %d memories using %d/%d tokens", len(packed), used, token_budget)
    return packed
