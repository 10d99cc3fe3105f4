"""Decision tracking and outcome-driven reinforcement of memories."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ami.exceptions import AmiError, DecisionNotFoundError, NothingToCommit, StoreError
from ami.memory.rows import decision_to_row, row_to_decision
from ami.memory.schema import Decision, validate_outcome
from ami.store.base import Query, Repository

logger = logging.getLogger(__name__)

REINFORCE_THRESHOLD = 0.8
PRIORITY_BOOST = 0.1
ACCESS_BOOST = 1


@dataclass
class OutcomeResult:
    """Result of recording a decision outcome."""

    decision: Decision
    reinforced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def was_reinforced(self) -> bool:
        return bool(self.reinforced)


def _excerpt(text: str, length: int = 50) -> str:
    return text[:length] + "..." if len(text) > length else text


def _commit(repo: Repository, message: str) -> None:
    try:
        repo.commit(message)
    except NothingToCommit:
        pass
    except StoreError as e:
        logger.warning(f"Failed to create commit: {e}")


def track_decision(repo: Repository, task_id: str, memory_ids: List[str], decision_text: str) -> Decision:
    """Record a decision and the memories that informed it.

    The decision captures the store's head version so it can later be tied
    back to the exact state the agent saw.
    """
    decision = Decision(
        id=str(uuid.uuid4()),
        task_id=task_id,
        decision_text=decision_text,
        memory_ids=list(memory_ids),
        commit_hash=repo.head(),
        created_at=datetime.now(timezone.utc).replace(microsecond=0),
    )
    repo.insert("decisions", decision_to_row(decision))
    _commit(repo, f"Track decision: {_excerpt(decision_text)}")
    return decision


def get_decision(repo: Repository, decision_id: str) -> Decision:
    rows = repo.query("decisions", Query(where={"id": decision_id}, limit=1))
    if not rows:
        raise DecisionNotFoundError(decision_id)
    return row_to_decision(rows[0])


def list_decisions(repo: Repository, task_id: Optional[str] = None) -> List[Decision]:
    """List decisions newest first, optionally for one task."""
    query = Query(order_by=[("created_at", True)])
    if task_id:
        query.where["task_id"] = task_id
    return [row_to_decision(row) for row in repo.query("decisions", query)]


def reinforce_memory(repo: Repository, memory_id: str, clamp: bool = False) -> None:
    """Boost one memory in place: priority + 0.1, access_count + 1.

    Raises:
        StoreError: If the memory is missing or the write fails
    """
    caps = {"priority": 1.0} if clamp else None
    changed = repo.increment(
        "memories",
        {"id": memory_id},
        {"priority": PRIORITY_BOOST, "access_count": ACCESS_BOOST},
        caps=caps,
    )
    if not changed:
        raise StoreError(f"memory not found: {memory_id}", operation="reinforce")


def record_outcome(
    repo: Repository,
    decision_id: str,
    outcome: float,
    feedback: str = "",
    clamp_priority: bool = False,
) -> OutcomeResult:
    """Record a decision's outcome and reinforce its memories on success.

    When ``outcome`` is strictly above 0.8, every linked memory gets
    priority +0.1 and access_count +1. A memory that can't be boosted
    (deleted, or the write fails) is logged and skipped; the rest still get
    reinforced. ``accessed_at`` is left alone. One commit covers it all.

    Args:
        repo: Repository holding the decision and memories
        decision_id: Decision to update
        outcome: Outcome in [0, 1]
        feedback: Free-text feedback
        clamp_priority: Cap boosted priorities at 1.0

    Returns:
        OutcomeResult with the updated decision and the boosted/failed ids

    Raises:
        ValidationError: If outcome is outside [0, 1]
        DecisionNotFoundError: If the decision doesn't exist
    """
    validate_outcome(outcome)
    decision = get_decision(repo, decision_id)

    repo.update("decisions", {"id": decision_id}, {"outcome": outcome, "feedback": feedback})
    decision = decision.model_copy(update={"outcome": outcome, "feedback": feedback})
    result = OutcomeResult(decision=decision)

    if outcome > REINFORCE_THRESHOLD:
        for memory_id in decision.memory_ids:
            try:
                reinforce_memory(repo, memory_id, clamp=clamp_priority)
                result.reinforced.append(memory_id)
            except AmiError as e:
                logger.warning(f"Failed to boost memory {memory_id}: {e}")
                result.failed.append(memory_id)

    if result.reinforced:
        _commit(repo, f"Reinforce memories for decision {decision_id} (outcome: {outcome:.2f})")
    else:
        _commit(repo, f"Record outcome for decision {decision_id}: {outcome:.2f}")

    return result
