"""Custom exception classes for AMI."""

from typing import Optional


class AmiError(Exception):
    """Base class for every failure AMI reports to its callers."""


class ValidationError(AmiError, ValueError):
    """Raised when input is rejected before any store access.

    Covers out-of-range priority/outcome values and unknown category/status names.
    """


class StoreError(AmiError):
    """Raised when a repository query, write or commit fails.

    Attributes:
        operation: Short name of the failed repository operation
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class NothingToCommit(StoreError):
    """Raised by ``Repository.commit`` when the working state has no changes."""

    def __init__(self, message: str = "nothing to commit, working tree clean"):
        super().__init__(message, operation="commit")


class MemoryNotFoundError(AmiError, LookupError):
    """Raised when a memory id does not exist."""

    def __init__(self, memory_id: str):
        super().__init__(f"memory not found: {memory_id}")
        self.memory_id = memory_id


class DecisionNotFoundError(AmiError, LookupError):
    """Raised when a decision id does not exist."""

    def __init__(self, decision_id: str):
        super().__init__(f"decision not found: {decision_id}")
        self.decision_id = decision_id


class ProviderError(AmiError, RuntimeError):
    """Raised when an embedding or text-generation provider call fails.

    Attributes:
        provider: Provider name (e.g. "openai", "ollama")
        attempts: Number of attempts made before giving up
    """

    def __init__(self, message: str, provider: Optional[str] = None, attempts: int = 1):
        super().__init__(message)
        self.provider = provider
        self.attempts = attempts


class ConflictResolutionError(AmiError):
    """Raised when a conflict resolution write fails; both memories keep their prior state."""
