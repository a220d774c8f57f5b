"""Recompute the canonical four-bucket partition of all memories.

Buckets are derived on every read from the memory records themselves; cluster
records written by older pipeline runs are migrated on read and only used as
hints for memories that carry no verdict of their own.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from memory_garden.errors import ClusterNotFoundError
from memory_garden.models import Cluster, ClusterId, LegacyClusterRecord, Memory
from memory_garden.services.actions import (
    ACTION_NAMES,
    ACTIONS,
    LEGACY_ALIASES,
    Action,
    is_blank,
    normalize_action,
)
from memory_garden.storage.base import MemoryRepository, StoredClusterRecord


logger = logging.getLogger("memory_garden.reconciler")

# Older age-based clusters had no action field, only a descriptive name
_COMPRESS_NAME_HINTS = ("old", "12-18", "6-12")


def _infer_action_from_name(name: object) -> Action:
    lowered = name.lower() if isinstance(name, str) else ""
    if any(hint in lowered for hint in _COMPRESS_NAME_HINTS):
        return Action.COMPRESS
    return Action.KEEP


def migrate_cluster_record(raw: object, source: Optional[str] = None) -> Optional[LegacyClusterRecord]:
    """Map any historical cluster record shape onto LegacyClusterRecord.

    Returns None (and logs) for records that cannot be interpreted.
    """
    if not isinstance(raw, dict):
        logger.warning("[reconcile.legacy_skipped] source=%s reason=not_a_mapping", source)
        return None

    members = raw.get("memoryIds")
    if members is None:
        members = raw.get("memories")
    if members is None:
        members = []
    if not isinstance(members, list):
        logger.warning("[reconcile.legacy_skipped] source=%s id=%s reason=members_not_a_list", source, raw.get("id"))
        return None

    memory_ids: List[str] = []
    for member in members:
        # Some early batches embedded whole memory objects
        if isinstance(member, dict):
            member = member.get("id")
        if not isinstance(member, str) or not member:
            logger.warning("[reconcile.legacy_skipped] source=%s id=%s reason=bad_member", source, raw.get("id"))
            return None
        if member not in memory_ids:
            memory_ids.append(member)

    raw_action = raw.get("action")
    action = _infer_action_from_name(raw.get("name")) if is_blank(raw_action) else normalize_action(raw_action)

    record_id = raw.get("id")
    name = raw.get("name")
    return LegacyClusterRecord(
        id=str(record_id) if record_id is not None else None,
        name=name if isinstance(name, str) else None,
        action=action,
        memory_ids=memory_ids,
        source=source,
    )


def load_legacy_records(stored: Iterable[StoredClusterRecord]) -> List[LegacyClusterRecord]:
    records: List[LegacyClusterRecord] = []
    for item in stored:
        record = migrate_cluster_record(item.payload, item.source)
        if record is not None:
            records.append(record)
    return records


def resolve_effective_action(memory: Memory, legacy_hint: Optional[Action] = None) -> Action:
    """override > own verdict > legacy cluster hint > keep."""

    if not is_blank(memory.override_action):
        return normalize_action(memory.override_action)
    if not is_blank(memory.predicted_action):
        return normalize_action(memory.predicted_action)
    if memory.analysis is not None:
        return memory.analysis.action
    if legacy_hint is not None:
        return legacy_hint
    return Action.KEEP


def _legacy_hints(records: Optional[Sequence[LegacyClusterRecord]]) -> Dict[str, Action]:
    hints: Dict[str, Action] = {}
    for record in records or ():
        for memory_id in record.memory_ids:
            # First record in store order wins
            hints.setdefault(memory_id, record.action)
    return hints


def reconcile(
    memories: Sequence[Memory],
    legacy_records: Optional[Sequence[LegacyClusterRecord]] = None,
) -> List[Cluster]:
    """Partition ``memories`` into exactly four buckets, one per action.

    Pure: the result depends only on the arguments. Duplicate memory ids are
    counted once (the first record is authoritative) and legacy records that
    name unknown ids contribute nothing.
    """
    hints = _legacy_hints(legacy_records)
    members: Dict[Action, List[str]] = {action: [] for action in ACTIONS}
    total_sizes: Dict[Action, int] = {action: 0 for action in ACTIONS}
    seen = set()

    for memory in memories:
        if memory.id in seen:
            continue
        seen.add(memory.id)
        action = resolve_effective_action(memory, hints.get(memory.id))
        members[action].append(memory.id)
        total_sizes[action] += memory.size

    return [
        Cluster(
            id=ClusterId.for_action(action),
            name=ACTION_NAMES[action],
            action=action,
            memory_ids=members[action],
            size=len(members[action]),
            total_size=total_sizes[action],
        )
        for action in ACTIONS
    ]


def parse_cluster_id(raw: str) -> ClusterId:
    """Decode a cluster identifier received from a client.

    Accepts ``action:<name>`` / ``legacy:<id>``, bare action names (and the
    ``forget`` alias), the old ``merged-<action>-<ts>`` / ``empty-<action>-<ts>``
    ids and ids containing an action name. Anything else addresses a stored
    legacy record by exact id.
    """
    value = (raw or "").strip()
    lowered = value.lower()
    known = {a.value for a in ACTIONS} | set(LEGACY_ALIASES)

    if lowered.startswith("action:"):
        return ClusterId.for_action(normalize_action(lowered.split(":", 1)[1]))
    if lowered.startswith("legacy:"):
        return ClusterId.for_record(value.split(":", 1)[1])
    if lowered in known:
        return ClusterId.for_action(normalize_action(lowered))
    if lowered.startswith(("merged-", "empty-")):
        parts = lowered.split("-")
        if len(parts) >= 2 and parts[1] in known:
            return ClusterId.for_action(normalize_action(parts[1]))
        return ClusterId.for_record(value)
    for candidate in [a.value for a in ACTIONS] + sorted(LEGACY_ALIASES):
        if candidate in lowered:
            return ClusterId.for_action(normalize_action(candidate))
    return ClusterId.for_record(value)


def resolve_bucket(raw: str) -> Action:
    """Action bucket addressed by a client-supplied cluster id.

    Raises ClusterNotFoundError for ids that only name a stored legacy record.
    """
    parsed = parse_cluster_id(raw)
    if parsed.kind != "action" or parsed.action is None:
        raise ClusterNotFoundError(raw)
    return parsed.action


class ClusterService:
    """Reconciliation over the repository's current state."""

    def __init__(self, repository: MemoryRepository) -> None:
        self.repository = repository

    def load_state(self) -> Tuple[List[Memory], List[LegacyClusterRecord]]:
        memories = self.repository.list_memories()
        records = load_legacy_records(self.repository.list_cluster_records())
        return memories, records

    def list_clusters(self) -> List[Cluster]:
        memories, records = self.load_state()
        clusters = reconcile(memories, records)
        logger.info(
            "[reconcile] memories=%s legacy_records=%s sizes=%s",
            len(memories),
            len(records),
            {c.action.value: c.size for c in clusters},
        )
        return clusters

    def get_cluster(self, action: object) -> Cluster:
        target = normalize_action(action)
        for cluster in self.list_clusters():
            if cluster.action == target:
                return cluster
        # reconcile always yields all four actions
        return Cluster.empty(target)

    def effective_action(self, memory_id: str) -> Optional[Action]:
        memories, records = self.load_state()
        hints = _legacy_hints(records)
        for memory in memories:
            if memory.id == memory_id:
                return resolve_effective_action(memory, hints.get(memory_id))
        return None