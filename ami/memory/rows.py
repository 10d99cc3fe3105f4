"""Typed row-to-entity mapping at the repository boundary.

Result rows arrive as loosely typed dicts: numbers may be ints, floats,
Decimals or strings; timestamps may be datetimes, SQL text, ISO-8601 or epoch
seconds; tags may be JSON text or lists. Everything is normalized here so the
engine only ever sees ``Memory`` / ``Decision`` / ``MemoryLink`` objects.

Fallback defaults for missing or null fields:
    strings -> "", floats -> 0.0, ints -> 0, timestamps -> None,
    tags -> [], embedding -> None, category -> episodic, status -> verified.
    A missing ``accessed_at`` falls back to ``created_at``, then the Unix epoch.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from ami.memory.schema import Category, Decision, Memory, MemoryLink, MemoryVersion, Status
from ami.memory.similarity import decode_embedding, encode_embedding

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
SQL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return 0.0


def as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return int(value)
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return 0


def as_time(value: Any) -> Optional[datetime]:
    """Normalize a timestamp to an aware UTC datetime.

    Naive values are assumed to already be UTC (that's how the store writes them).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    else:
        text = as_str(value).strip()
        try:
            dt = datetime.strptime(text, SQL_TIME_FORMAT)
        except ValueError:
            try:
                dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                logger.debug("Unparseable timestamp %r", value)
                return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def as_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [as_str(t) for t in value if as_str(t)]
    text = as_str(value).strip()
    if not text or text == "[]":
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return [t.strip() for t in text.split(",") if t.strip()]
    if isinstance(parsed, list):
        return [as_str(t) for t in parsed if as_str(t)]
    return [as_str(parsed)]


def as_str_list(value: Any) -> List[str]:
    """Decode a JSON id list (decision.memory_ids)."""
    return as_tags(value)


def as_category(value: Any) -> Category:
    try:
        return Category(as_str(value))
    except ValueError:
        return Category.EPISODIC


def as_status(value: Any) -> Status:
    try:
        return Status(as_str(value))
    except ValueError:
        return Status.VERIFIED


def _memory_fields(row: Mapping[str, Any]) -> Dict[str, Any]:
    created_at = as_time(row.get("created_at"))
    accessed_at = as_time(row.get("accessed_at")) or created_at or EPOCH
    return {
        "id": as_str(row.get("id")),
        "content": as_str(row.get("content")),
        "owner_id": as_str(row.get("owner_id")) or "system",
        "team_id": as_str(row.get("team_id")) or "system",
        "category": as_category(row.get("category")),
        "priority": as_float(row.get("priority")),
        "created_at": created_at,
        "accessed_at": accessed_at,
        "access_count": max(0, as_int(row.get("access_count"))),
        "source": as_str(row.get("source")),
        "tags": as_tags(row.get("tags")),
        "embedding": decode_embedding(row.get("embedding")),
        "status": as_status(row.get("status")),
    }


def row_to_memory(row: Mapping[str, Any]) -> Memory:
    return Memory(**_memory_fields(row))


def row_to_version(row: Mapping[str, Any]) -> MemoryVersion:
    return MemoryVersion(
        **_memory_fields(row),
        commit_hash=as_str(row.get("commit_hash")),
        committer=as_str(row.get("committer")),
        commit_date=as_time(row.get("commit_date")),
    )


def row_to_decision(row: Mapping[str, Any]) -> Decision:
    return Decision(
        id=as_str(row.get("id")),
        task_id=as_str(row.get("task_id")),
        decision_text=as_str(row.get("decision_text")),
        memory_ids=as_str_list(row.get("memory_ids")),
        outcome=as_float(row.get("outcome")),
        feedback=as_str(row.get("feedback")),
        commit_hash=as_str(row.get("commit_hash")),
        created_at=as_time(row.get("created_at")),
    )


def row_to_link(row: Mapping[str, Any]) -> MemoryLink:
    return MemoryLink(
        from_id=as_str(row.get("from_id")),
        to_id=as_str(row.get("to_id")),
        relation=as_str(row.get("relation")),
    )


def to_store_time(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to the naive UTC form the store keeps."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def memory_to_row(memory: Memory) -> Dict[str, Any]:
    return {
        "id": memory.id,
        "content": memory.content,
        "owner_id": memory.owner_id,
        "team_id": memory.team_id,
        "category": memory.category.value,
        "priority": memory.priority,
        "created_at": to_store_time(memory.created_at),
        "accessed_at": to_store_time(memory.accessed_at),
        "access_count": memory.access_count,
        "source": memory.source,
        "tags": json.dumps(memory.tags),
        "embedding": encode_embedding(memory.embedding) if memory.embedding else None,
        "status": memory.status.value,
    }


def decision_to_row(decision: Decision) -> Dict[str, Any]:
    return {
        "id": decision.id,
        "task_id": decision.task_id,
        "decision_text": decision.decision_text,
        "memory_ids": json.dumps(decision.memory_ids),
        "outcome": decision.outcome,
        "feedback": decision.feedback,
        "commit_hash": decision.commit_hash,
        "created_at": to_store_time(decision.created_at),
    }
