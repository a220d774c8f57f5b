"""Classification lifecycle of a memory record.

Unanalyzed -> Analyzed(ai | heuristic) -> Overridden, with TTL expiry sending
an analyzed memory back to Unanalyzed. Deleted memories are simply absent
from the repository and recorded in the oblivion log.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from memory_garden.models import Memory
from memory_garden.services.actions import is_blank


SECONDS_PER_MONTH = 30 * 24 * 3600


class MemoryState(str, Enum):
    UNANALYZED = "unanalyzed"
    ANALYZED_AI = "analyzed_ai"
    ANALYZED_HEURISTIC = "analyzed_heuristic"
    OVERRIDDEN = "overridden"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def age_in_months(created_at: Any, now: Optional[datetime] = None) -> int:
    """Whole 30-day months between ``created_at`` and ``now``; 0 when unknown."""

    created = parse_timestamp(created_at)
    if created is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return int(abs((now - created).total_seconds()) // SECONDS_PER_MONTH)


def _analysis_time(memory: Memory) -> Optional[datetime]:
    stamp = memory.nemotron_updated_at
    if stamp is None and memory.analysis is not None:
        stamp = memory.analysis.timestamp
    return parse_timestamp(stamp)


def _has_verdict(memory: Memory) -> bool:
    return memory.analysis is not None or not is_blank(memory.predicted_action)


def memory_state(memory: Memory, *, ttl_seconds: float, now: Optional[datetime] = None) -> MemoryState:
    if not is_blank(memory.override_action):
        return MemoryState.OVERRIDDEN
    if not _has_verdict(memory):
        return MemoryState.UNANALYZED
    analyzed_at = _analysis_time(memory)
    now = now or datetime.now(timezone.utc)
    if analyzed_at is None or (now - analyzed_at).total_seconds() >= ttl_seconds:
        return MemoryState.UNANALYZED
    if memory.nemotron_analyzed or (memory.analysis is not None and memory.analysis.nemotron_analyzed):
        return MemoryState.ANALYZED_AI
    return MemoryState.ANALYZED_HEURISTIC


def needs_refresh(memory: Memory, *, refresh_days: int, now: Optional[datetime] = None) -> bool:
    """True for memories without a fresh model-derived analysis.

    Overridden memories are refreshed too so that clearing the override falls
    back to a current verdict.
    """
    now = now or datetime.now(timezone.utc)
    ttl_seconds = refresh_days * 24 * 3600
    unpinned = memory.model_copy(update={"override_action": None})
    return memory_state(unpinned, ttl_seconds=ttl_seconds, now=now) != MemoryState.ANALYZED_AI
