"""Memory data structures."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ami.exceptions import ValidationError


class Category(str, Enum):
    """Memory category; governs decay weighting."""

    CORE = "core"
    SEMANTIC = "semantic"
    WORKING = "working"
    EPISODIC = "episodic"

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Parse a category name, raising ValidationError for unknown names."""
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(c.value for c in cls)
            raise ValidationError(f"invalid category '{value}'. Must be one of: {choices}") from None


class Status(str, Enum):
    """Verification status of a memory. Deprecated memories are retired, not deleted."""

    VERIFIED = "verified"
    UNDER_REVIEW = "under_review"
    DEPRECATED = "deprecated"

    @classmethod
    def parse(cls, value: str) -> "Status":
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            raise ValidationError(f"invalid status '{value}'. Must be one of: {choices}") from None


def validate_priority(priority: float) -> float:
    if not 0.0 <= priority <= 1.0:
        raise ValidationError("priority must be between 0.0 and 1.0")
    return priority


def validate_outcome(outcome: float) -> float:
    if not 0.0 <= outcome <= 1.0:
        raise ValidationError("outcome must be between 0.0 and 1.0")
    return outcome


class Memory(BaseModel):
    """A single remembered fact."""

    id: str
    content: str
    owner_id: str = "system"
    team_id: str = "system"
    category: Category = Category.EPISODIC
    priority: float = 0.5
    created_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    access_count: int = 0
    source: str = ""
    tags: List[str] = Field(default_factory=list)
    # Set once at creation; never re-embedded on edit
    embedding: Optional[List[float]] = Field(default=None, exclude=True)
    status: Status = Status.VERIFIED

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


class MemoryVersion(Memory):
    """A historical snapshot of a memory at one commit."""

    commit_hash: str
    committer: str = ""
    commit_date: Optional[datetime] = None


class Decision(BaseModel):
    """A tracked decision and the memories that informed it."""

    id: str
    task_id: str = ""
    decision_text: str
    memory_ids: List[str] = Field(default_factory=list)
    outcome: float = 0.0
    feedback: str = ""
    commit_hash: str = ""
    created_at: Optional[datetime] = None


class MemoryLink(BaseModel):
    """Directed edge between two memories, queried in both directions."""

    from_id: str
    to_id: str
    relation: str = "related"

    @field_validator("relation", mode="before")
    @classmethod
    def default_relation(cls, v):
        return v or "related"
