"""Pairwise resolution of contradicting memories."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from ami.exceptions import AmiError, ConflictResolutionError, NothingToCommit, StoreError, ValidationError
from ami.memory.schema import Memory, Status
from ami.store.base import Repository

logger = logging.getLogger(__name__)

MERGE_SEPARATOR = " | "


class ConflictAction(str, Enum):
    KEEP_FIRST = "keep1"
    KEEP_SECOND = "keep2"
    MERGE = "merge"
    NOOP = "noop"

    @classmethod
    def from_choice(cls, choice) -> "ConflictAction":
        """Map an interactive menu choice (1-4) or an action name to an action."""
        menu = {"1": cls.KEEP_FIRST, "2": cls.KEEP_SECOND, "3": cls.MERGE, "4": cls.NOOP}
        key = str(choice).strip().lower()
        if key in menu:
            return menu[key]
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"invalid choice '{choice}'. Use 1-4 or one of: keep1, keep2, merge, noop") from None


MENU = [
    (ConflictAction.KEEP_FIRST, "Keep Memory 1 (deprecate Memory 2)"),
    (ConflictAction.KEEP_SECOND, "Keep Memory 2 (deprecate Memory 1)"),
    (ConflictAction.MERGE, "Merge into Memory 1"),
    (ConflictAction.NOOP, "Keep both (no action)"),
]


@dataclass
class ConflictResolution:
    """What a resolution changed."""

    action: ConflictAction
    deprecated: List[str] = field(default_factory=list)
    merged_into: str = ""
    merged_content: str = ""


def merge_content(first: str, second: str) -> str:
    return f"{first}{MERGE_SEPARATOR}{second}"


def check_distinct(first_id: str, second_id: str) -> None:
    if first_id == second_id:
        raise ValidationError(f"cannot resolve a conflict between memory {first_id} and itself")


def resolve_conflict(repo: Repository, m1: Memory, m2: Memory, action: ConflictAction) -> ConflictResolution:
    """Apply a resolution to two memories.

    All writes happen in a single transaction: if any of them fails, neither
    memory changes and ConflictResolutionError is raised. The version commit
    afterwards is best-effort.

    Args:
        repo: Repository holding both memories
        m1: First memory
        m2: Second memory
        action: Resolution to apply

    Returns:
        ConflictResolution describing the applied changes

    Raises:
        ValidationError: If both memories are the same one
        ConflictResolutionError: If a write fails
    """
    check_distinct(m1.id, m2.id)
    result = ConflictResolution(action=action)
    if action == ConflictAction.NOOP:
        return result

    deprecated_value = Status.DEPRECATED.value
    try:
        with repo.transaction():
            if action == ConflictAction.KEEP_FIRST:
                _write(repo, m2.id, {"status": deprecated_value})
                result.deprecated.append(m2.id)
            elif action == ConflictAction.KEEP_SECOND:
                _write(repo, m1.id, {"status": deprecated_value})
                result.deprecated.append(m1.id)
            elif action == ConflictAction.MERGE:
                merged = merge_content(m1.content, m2.content)
                _write(repo, m1.id, {"content": merged})
                _write(repo, m2.id, {"status": deprecated_value})
                result.merged_into = m1.id
                result.merged_content = merged
                result.deprecated.append(m2.id)
    except AmiError as e:
        raise ConflictResolutionError(f"failed to resolve conflict between {m1.id} and {m2.id}: {e}") from e

    try:
        repo.commit(f"Resolve conflict between {m1.id} and {m2.id}: {action.value}")
    except NothingToCommit:
        pass
    except StoreError as e:
        logger.warning(f"Failed to commit conflict resolution: {e}")

    return result


def _write(repo: Repository, memory_id: str, fields: dict) -> None:
    if repo.update("memories", {"id": memory_id}, fields) == 0:
        raise StoreError(f"memory not found: {memory_id}", operation="update")
