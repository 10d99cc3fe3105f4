"""Versioned record storage."""

from ami.store.base import NothingToCommit, Query, Repository

__all__ = ["NothingToCommit", "Query", "Repository"]
