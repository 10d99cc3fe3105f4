"""Memory recall and prioritization engine."""

from ami.memory.manager import (
    CatchupOptions,
    MemoryManager,
    RecallOptions,
    UpdateParams,
    get_memory_manager,
    reset_memory_manager,
)
from ami.memory.schema import Category, Decision, Memory, MemoryLink, MemoryVersion, Status

__all__ = [
    "CatchupOptions",
    "Category",
    "Decision",
    "Memory",
    "MemoryLink",
    "MemoryManager",
    "MemoryVersion",
    "RecallOptions",
    "Status",
    "UpdateParams",
    "get_memory_manager",
    "reset_memory_manager",
]
