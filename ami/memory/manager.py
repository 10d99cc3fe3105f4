"""Memory manager: the recall & prioritization engine over a versioned repository."""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from ami.config import Config
from ami.exceptions import AmiError, MemoryNotFoundError, NothingToCommit, StoreError, ValidationError
from ami.memory import conflict, decisions, promotion, reflection
from ami.memory.embeddings import get_embedding, is_configured
from ami.memory.packing import count_tokens, pack_context
from ami.memory.ranking import rank_by_decay, rank_by_keystone, rank_by_priority, rank_by_similarity
from ami.memory.rows import memory_to_row, row_to_link, row_to_memory, row_to_version, to_store_time
from ami.memory.schema import Category, Decision, Memory, MemoryLink, MemoryVersion, Status, validate_priority
from ami.memory.scoring import memory_decay_score
from ami.store.base import Query, Repository

logger = logging.getLogger(__name__)

CORE_CONTEXT_LIMIT = 10


def parse_date_filter(value: str) -> datetime:
    """Parse date filter value - relative (7d, 2w, 12h, 1m) or ISO format.

    Args:
        value: Date string like "12h", "7d", "2w", "1m", or "2024-12-01"

    Returns:
        Timezone-aware UTC datetime
    """
    now = datetime.now(timezone.utc)
    match = re.match(r"^(\d+)([hdwm])$", value.strip().lower())
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "h":
            return now - timedelta(hours=amount)
        elif unit == "d":
            return now - timedelta(days=amount)
        elif unit == "w":
            return now - timedelta(weeks=amount)
        elif unit == "m":
            return now - timedelta(days=amount * 30)

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"invalid date filter '{value}'. Use e.g. 12h, 7d, 2w or an ISO date") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class RecallOptions:
    """Filters and ranking mode for recall.

    Attributes:
        query: Substring filter on content; the similarity target in semantic mode
        limit: Maximum results (negative for no limit)
        tags: Every listed tag must be present
        category: Restrict to one category
        owner_id: Restrict to one owner
        team_id: Restrict to one team
        with_decay: Rank by decay score
        semantic: Rank by embedding similarity to ``query``
        include_deprecated: Also return deprecated memories
    """

    query: str = ""
    limit: int = 10
    tags: List[str] = field(default_factory=list)
    category: Optional[Category] = None
    owner_id: Optional[str] = None
    team_id: Optional[str] = None
    with_decay: bool = False
    semantic: bool = False
    include_deprecated: bool = False


@dataclass
class UpdateParams:
    """Field-presence update: None means "leave unchanged"."""

    id: str
    content: Optional[str] = None
    owner_id: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[float] = None
    source: Optional[str] = None
    tags: Optional[List[str]] = None

    def fields(self) -> Dict[str, Any]:
        values = {
            "content": self.content,
            "owner_id": self.owner_id,
            "category": self.category,
            "priority": self.priority,
            "source": self.source,
            "tags": self.tags,
        }
        return {k: v for k, v in values.items() if v is not None}


@dataclass
class CatchupOptions:
    limit: int = 10
    category: Optional[Category] = None
    since: Optional[Union[datetime, str]] = None


def _excerpt(text: str, length: int = 50) -> str:
    return text[:length] + "..." if len(text) > length else text


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class MemoryManager:
    """Orchestrates memory operations over a Repository.

    The manager owns no storage itself; every read and write goes through the
    repository, and every successful write is followed by a best-effort
    version commit.
    """

    def __init__(
        self,
        repo: Repository,
        config: Optional[Config] = None,
        embedder: Optional[Callable[[str], List[float]]] = None,
        token_counter: Optional[Callable[[str], int]] = None,
        generator: Optional[Callable[[str], str]] = None,
    ):
        """Initialize memory manager.

        Args:
            repo: Versioned repository to operate on
            config: AMI configuration (defaults apply when None)
            embedder: Text -> vector function; by default the configured
                embedding model is used when its credential is present
            token_counter: Text -> token count; defaults to litellm's tokenizer
            generator: Prompt -> completion function for fact extraction
        """
        self.repo = repo
        self.config = config or Config()
        self.embedder = embedder
        if self.embedder is None and is_configured(self.config.embedding_model):
            model = self.config.embedding_model
            self.embedder = lambda text: get_embedding(text, model)
        self.token_counter = token_counter or (lambda text: count_tokens(text, self.config.token_model))
        self.generator = generator

    # -- internals ---------------------------------------------------------

    def _commit(self, message: str) -> Optional[str]:
        """Create a version commit; failures only warn since the write already landed."""
        try:
            return self.repo.commit(message)
        except NothingToCommit:
            logger.debug(f"Nothing to commit for: {message}")
        except StoreError as e:
            logger.warning(f"Failed to create commit: {e}")
        return None

    def _memories(self, query: Optional[Query] = None) -> List[Memory]:
        return [row_to_memory(row) for row in self.repo.query("memories", query)]

    def _update_fields(self, memory_id: str, fields: Dict[str, Any]) -> None:
        row: Dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, (Category, Status)):
                value = value.value
            elif key == "tags":
                value = json.dumps(list(value))
            elif isinstance(value, datetime):
                value = to_store_time(value)
            row[key] = value
        if self.repo.update("memories", {"id": memory_id}, row) == 0:
            raise MemoryNotFoundError(memory_id)

    # -- core CRUD ---------------------------------------------------------

    def add(
        self,
        content: str,
        owner_id: str = "",
        category: Union[Category, str] = Category.EPISODIC,
        priority: float = 0.5,
        tags: Optional[List[str]] = None,
        source: str = "",
        team_id: str = "",
    ) -> Memory:
        """Store a new memory.

        The embedding is computed when a provider is configured; if that call
        fails the memory is stored without a vector.

        Raises:
            ValidationError: On an out-of-range priority or unknown category
        """
        validate_priority(priority)
        if not isinstance(category, Category):
            category = Category.parse(category)

        embedding = None
        if self.embedder is not None:
            try:
                embedding = self.embedder(content)
            except AmiError as e:
                logger.warning(f"Storing memory without embedding: {e}")

        now = _now()
        memory = Memory(
            id=str(uuid.uuid4()),
            content=content,
            owner_id=owner_id or self.config.default_owner,
            team_id=team_id or self.config.default_team,
            category=category,
            priority=priority,
            created_at=now,
            accessed_at=now,
            access_count=0,
            source=source,
            tags=list(tags or []),
            embedding=embedding,
        )
        self.repo.insert("memories", memory_to_row(memory))
        logger.debug(f"Stored memory {memory.id}: {_excerpt(content)}")

        self._commit(f"Add memory: {_excerpt(content)}")
        return memory

    def get(self, memory_id: str) -> Memory:
        memories = self._memories(Query(where={"id": memory_id}, limit=1))
        if not memories:
            raise MemoryNotFoundError(memory_id)
        return memories[0]

    def update(self, params: UpdateParams) -> Memory:
        """Apply a field-presence update and refresh ``accessed_at``.

        The embedding is not recomputed when content changes.
        """
        fields = params.fields()
        if "priority" in fields:
            validate_priority(fields["priority"])
        if "category" in fields and not isinstance(fields["category"], Category):
            fields["category"] = Category.parse(fields["category"])

        self.get(params.id)
        fields["accessed_at"] = _now()
        self._update_fields(params.id, fields)

        self._commit(f"Update memory: {params.id}")
        return self.get(params.id)

    def delete(self, memory_id: str) -> None:
        if self.repo.delete("memories", {"id": memory_id}) == 0:
            raise MemoryNotFoundError(memory_id)
        self._commit(f"Delete memory: {memory_id}")

    def set_status(self, memory_id: str, status: Union[Status, str]) -> None:
        if not isinstance(status, Status):
            status = Status.parse(status)
        self._update_fields(memory_id, {"status": status})
        self._commit(f"Update status of memory {memory_id} to {status.value}")

    def set_content(self, memory_id: str, content: str) -> None:
        self._update_fields(memory_id, {"content": content})
        self._commit(f"Update content of memory {memory_id}")

    def count(self) -> int:
        return len(self.repo.query("memories"))

    def tags(self) -> List[str]:
        """All distinct tags, sorted."""
        unique = set()
        for memory in self._memories():
            unique.update(memory.tags)
        return sorted(unique)

    # -- recall ------------------------------------------------------------

    def _candidates(self, opts: RecallOptions, substring: bool) -> List[Memory]:
        query = Query()
        if opts.category is not None:
            category = opts.category if isinstance(opts.category, Category) else Category.parse(opts.category)
            query.where["category"] = category.value
        if opts.owner_id:
            query.where["owner_id"] = opts.owner_id
        if opts.team_id:
            query.where["team_id"] = opts.team_id
        if not opts.include_deprecated:
            query.where_not["status"] = Status.DEPRECATED.value
        if substring and opts.query:
            query.contains["content"] = opts.query

        memories = self._memories(query)
        if opts.tags:
            wanted = set(opts.tags)
            memories = [m for m in memories if wanted.issubset(m.tags)]
        return memories

    def recall(self, opts: RecallOptions) -> List[Memory]:
        """Retrieve memories by filter and ranking mode.

        Modes:
            default: priority desc, then most recently accessed
            with_decay: decay score desc
            semantic: cosine similarity to the query embedding; combined with
                with_decay, similarity only ranks the top decay-scored pool

        If the query can't be embedded, semantic recall falls back to the
        non-semantic mode (with the substring filter) and logs a warning.
        """
        if opts.semantic and opts.query:
            query_vector = self._embed_query(opts.query)
            if query_vector is not None:
                candidates = self._candidates(opts, substring=False)
                if opts.with_decay:
                    pool = rank_by_decay(candidates, self.config.semantic_candidate_pool)
                    candidates = [memory for memory, _ in pool]
                ranked = rank_by_similarity(query_vector, candidates, opts.limit)
                return [memory for memory, _ in ranked]

        candidates = self._candidates(opts, substring=True)
        if opts.with_decay:
            return [memory for memory, _ in rank_by_decay(candidates, opts.limit)]
        return rank_by_priority(candidates, opts.limit)

    def _embed_query(self, text: str) -> Optional[List[float]]:
        if self.embedder is None:
            logger.warning("Semantic recall requested but no embedding provider is configured")
            return None
        try:
            return self.embedder(text)
        except AmiError as e:
            logger.warning(f"Query embedding failed, falling back to text recall: {e}")
            return None

    def catchup(self, opts: Optional[CatchupOptions] = None) -> List[Memory]:
        """Most recently created memories, newest first."""
        opts = opts or CatchupOptions()
        query = Query(order_by=[("created_at", True)], limit=opts.limit)
        if opts.category is not None:
            category = opts.category if isinstance(opts.category, Category) else Category.parse(opts.category)
            query.where["category"] = category.value
        if opts.since is not None:
            since = parse_date_filter(opts.since) if isinstance(opts.since, str) else opts.since
            query.where_gte["created_at"] = to_store_time(since)
        return self._memories(query)

    def keystones(self, limit: int = 10) -> List[Memory]:
        return rank_by_keystone(self._memories(), limit)

    def context(self, task: str = "", limit: int = 10, token_budget: Optional[int] = None) -> List[Memory]:
        """Assemble prompt context within a token budget.

        Core memories come first, then (when a task is given) task memories
        ranked by decay plus semantic similarity.
        """
        if token_budget is None:
            token_budget = self.config.context_token_budget
        if token_budget <= 0:
            return []

        core = self.recall(RecallOptions(category=Category.CORE, limit=CORE_CONTEXT_LIMIT))
        task_memories: List[Memory] = []
        if task:
            task_memories = self.recall(RecallOptions(query=task, limit=limit, with_decay=True, semantic=True))

        return pack_context(core, task_memories, token_budget, self.token_counter)

    def reflect(self, hours: int = 24, limit: int = 10) -> List[Memory]:
        """Recent episodic memories, the raw material for synthesis."""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        return self.catchup(CatchupOptions(limit=limit, category=Category.EPISODIC, since=since))

    # -- analytics ---------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        memories = self._memories()
        distribution: Dict[str, int] = {}
        for memory in memories:
            distribution[memory.category.value] = distribution.get(memory.category.value, 0) + 1

        total = len(memories)
        if total:
            avg_priority = sum(m.priority for m in memories) / total
            avg_access = sum(m.access_count for m in memories) / total
            now = datetime.now(timezone.utc)
            avg_decay = sum(memory_decay_score(m, now) for m in memories) / total
        else:
            avg_priority = avg_access = avg_decay = 0.0

        return {
            "total_memories": total,
            "distribution": distribution,
            "metrics": {
                "avg_priority": avg_priority,
                "avg_access_count": avg_access,
                "avg_decay_score": avg_decay,
            },
        }

    # -- versioning --------------------------------------------------------

    def history(self, memory_id: str) -> List[MemoryVersion]:
        return [row_to_version(row) for row in self.repo.history("memories", memory_id)]

    def rollback(self, memory_id: str, commit_hash: str) -> Memory:
        """Restore content, category, priority, source and tags from a past version."""
        version = next((v for v in self.history(memory_id) if v.commit_hash == commit_hash), None)
        if version is None:
            raise StoreError(f"no history found for id {memory_id} and commit {commit_hash}", operation="rollback")

        self._update_fields(
            memory_id,
            {
                "content": version.content,
                "category": version.category,
                "priority": version.priority,
                "source": version.source,
                "tags": version.tags,
                "accessed_at": _now(),
            },
        )
        self._commit(f"Rollback memory {memory_id} to commit {commit_hash}")
        return self.get(memory_id)

    def checkpoint(self, description: str = "") -> str:
        """Commit the current state, tolerating a clean tree. Returns the head hash."""
        message = f"Checkpoint: {description}" if description else "Checkpoint"
        self._commit(message)
        return self.repo.head()

    # -- links -------------------------------------------------------------

    def link(self, from_id: str, to_id: str, relation: str = "related") -> MemoryLink:
        link = MemoryLink(from_id=from_id, to_id=to_id, relation=relation)
        self.repo.upsert("memory_links", link.model_dump(), keys=("from_id", "to_id"), update_fields=("relation",))
        self._commit(f"Link memory {from_id} to {to_id} ({link.relation})")
        return link

    def links(self, memory_id: str) -> List[MemoryLink]:
        """Links touching a memory in either direction."""
        query = Query(any_of=[("from_id", memory_id), ("to_id", memory_id)])
        return [row_to_link(row) for row in self.repo.query("memory_links", query)]

    # -- promotion ---------------------------------------------------------

    def promotion_candidates(
        self, min_access_count: Optional[int] = None, min_outcome: Optional[float] = None
    ) -> List[Memory]:
        if min_access_count is None:
            min_access_count = self.config.promote_min_access_count
        if min_outcome is None:
            min_outcome = self.config.promote_min_outcome
        return promotion.select_promotion_candidates(
            self._memories(), self.list_decisions(), min_access_count, min_outcome
        )

    def promote(self, memory_id: str, global_repo: Repository) -> Memory:
        """Copy one memory into the global store. The local copy is unchanged."""
        memory = self.get(memory_id)
        promotion.promote_memory(memory, global_repo)
        return memory

    # -- conflicts ---------------------------------------------------------

    def resolve_conflict(
        self, first_id: str, second_id: str, action: Union[conflict.ConflictAction, str]
    ) -> conflict.ConflictResolution:
        conflict.check_distinct(first_id, second_id)
        if not isinstance(action, conflict.ConflictAction):
            action = conflict.ConflictAction.from_choice(action)
        m1 = self.get(first_id)
        m2 = self.get(second_id)
        return conflict.resolve_conflict(self.repo, m1, m2, action)

    # -- decisions ---------------------------------------------------------

    def track_decision(self, task_id: str, memory_ids: List[str], decision_text: str) -> Decision:
        return decisions.track_decision(self.repo, task_id, memory_ids, decision_text)

    def record_outcome(self, decision_id: str, outcome: float, feedback: str = "") -> decisions.OutcomeResult:
        return decisions.record_outcome(
            self.repo,
            decision_id,
            outcome,
            feedback,
            clamp_priority=self.config.clamp_reinforced_priority,
        )

    def get_decision(self, decision_id: str) -> Decision:
        return decisions.get_decision(self.repo, decision_id)

    def list_decisions(self, task_id: Optional[str] = None) -> List[Decision]:
        return decisions.list_decisions(self.repo, task_id)

    # -- reflection --------------------------------------------------------

    def extract_facts(self, raw_content: str) -> List[str]:
        """Distill raw text (chat logs, transcripts) into candidate facts.

        Raises:
            ProviderError: If the text-generation provider keeps failing
        """
        return reflection.extract_facts(raw_content, self.config.reflection_model, generator=self.generator)

    def close(self) -> None:
        self.repo.close()


# Singleton instance
_memory_manager: Optional[MemoryManager] = None


def get_memory_manager(config: Optional[Config] = None) -> MemoryManager:
    """Get the singleton MemoryManager over the local DuckDB store.

    Returns:
        MemoryManager instance
    """
    global _memory_manager

    if _memory_manager is None:
        from ami.config import load_config, resolve_db_path
        from ami.store.duckdb_store import DuckDBRepository

        config = config or load_config()
        repo = DuckDBRepository(resolve_db_path(config))
        _memory_manager = MemoryManager(repo, config=config)

    return _memory_manager


def reset_memory_manager() -> None:
    """Reset the singleton (for testing or reconfiguration)."""
    global _memory_manager
    if _memory_manager is not None:
        _memory_manager.close()
        _memory_manager = None
