"""
Base repository interface for memory, cluster and oblivion records.

Memories and cluster records are stored in batches (one batch per upload job,
as written by the scanner pipeline). Subclasses only provide raw batch and
document primitives; record handling lives here so every backend applies the
same defensive reads.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from memory_garden.errors import StorageError
from memory_garden.models import Memory, Tombstone


logger = logging.getLogger("memory_garden.storage")

MEMORIES = "memories"
CLUSTERS = "clusters"


@dataclass(frozen=True)
class StoredClusterRecord:
    """A cluster record exactly as persisted, tagged with the batch it came from."""

    source: str
    payload: Any


class MemoryRepository(ABC):
    """
    Abstract base class for the durable store.

    Single-writer: no locking is attempted across processes.
    """

    # Raw primitives
    @abstractmethod
    def _batch_ids(self, kind: str) -> List[str]:
        """Return batch ids of ``kind`` in a stable order."""

    @abstractmethod
    def _read_batch(self, kind: str, batch_id: str) -> Any:
        """Return the decoded batch payload. Raises StorageError when unreadable."""

    @abstractmethod
    def _write_batch(self, kind: str, batch_id: str, records: List[Any]) -> None:
        """Replace a batch with ``records``."""

    @abstractmethod
    def _drop_batch(self, kind: str, batch_id: str) -> None:
        """Remove a batch entirely."""

    @abstractmethod
    def _append_tombstone_record(self, record: Dict[str, Any]) -> None:
        """Append one entry to the oblivion log."""

    @abstractmethod
    def _read_tombstone_records(self) -> List[Any]:
        """Return all raw oblivion log entries."""

    @abstractmethod
    def _read_profile(self) -> Optional[Dict[str, Any]]:
        """Return the stored profile document, None when absent."""

    @abstractmethod
    def _write_profile(self, profile: Dict[str, Any]) -> None:
        """Replace the stored profile document."""

    @abstractmethod
    def delete_artifact(self, stored_filename: str) -> bool:
        """Delete an uploaded binary. False when absent; StorageError on failure."""

    # Batch iteration
    def _iter_batches(self, kind: str) -> Iterator[Tuple[str, List[Any]]]:
        for batch_id in self._batch_ids(kind):
            try:
                payload = self._read_batch(kind, batch_id)
            except StorageError as exc:
                logger.warning("[storage.batch_unreadable] kind=%s batch=%s error=%s", kind, batch_id, exc)
                continue
            if isinstance(payload, dict):
                payload = [payload]
            if not isinstance(payload, list):
                logger.warning("[storage.batch_malformed] kind=%s batch=%s type=%s", kind, batch_id, type(payload).__name__)
                continue
            yield batch_id, payload

    @staticmethod
    def _raw_id(raw: Any) -> Optional[str]:
        if isinstance(raw, dict) and raw.get("id") is not None:
            return str(raw["id"])
        return None

    @staticmethod
    def _member_id(member: Any) -> Optional[str]:
        if isinstance(member, dict):
            member = member.get("id")
        return str(member) if member is not None else None

    @staticmethod
    def _parse_memory(raw: Any, batch_id: str) -> Optional[Memory]:
        try:
            return Memory.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "[storage.memory_malformed] batch=%s id=%s errors=%s",
                batch_id,
                raw.get("id") if isinstance(raw, dict) else None,
                exc.error_count(),
            )
            return None

    # Memories
    def list_memories(self) -> List[Memory]:
        memories: List[Memory] = []
        for batch_id, records in self._iter_batches(MEMORIES):
            for raw in records:
                memory = self._parse_memory(raw, batch_id)
                if memory is not None:
                    memories.append(memory)
        return memories

    def get_memory(self, memory_id: str) -> Optional[Memory]:
        for batch_id, records in self._iter_batches(MEMORIES):
            for raw in records:
                if self._raw_id(raw) == memory_id:
                    return self._parse_memory(raw, batch_id)
        return None

    def save_memories(self, batch_id: str, memories: List[Memory]) -> None:
        self._write_batch(MEMORIES, batch_id, [m.to_record() for m in memories])
        logger.info("[storage.save_memories] batch=%s count=%s", batch_id, len(memories))

    def update_memory(self, memory: Memory) -> bool:
        """Rewrite the first stored record with ``memory.id``."""

        for batch_id, records in self._iter_batches(MEMORIES):
            for index, raw in enumerate(records):
                if self._raw_id(raw) == memory.id:
                    records[index] = memory.to_record()
                    self._write_batch(MEMORIES, batch_id, records)
                    return True
        return False

    def update_memories(self, memories: List[Memory]) -> int:
        """Rewrite many records, touching each batch at most once."""

        pending = {m.id: m for m in memories}
        updated = 0
        for batch_id, records in self._iter_batches(MEMORIES):
            changed = False
            for index, raw in enumerate(records):
                memory = pending.pop(self._raw_id(raw) or "", None)
                if memory is not None:
                    records[index] = memory.to_record()
                    changed = True
                    updated += 1
            if changed:
                self._write_batch(MEMORIES, batch_id, records)
            if not pending:
                break
        return updated

    def delete_memory(self, memory_id: str) -> Optional[Memory]:
        """Remove every stored record with ``memory_id``; return the first one."""

        removed: Optional[Memory] = None
        found = False
        for batch_id, records in self._iter_batches(MEMORIES):
            kept = [raw for raw in records if self._raw_id(raw) != memory_id]
            if len(kept) == len(records):
                continue
            if not found:
                first = next(raw for raw in records if self._raw_id(raw) == memory_id)
                removed = self._parse_memory(first, batch_id)
                found = True
            if kept:
                self._write_batch(MEMORIES, batch_id, kept)
            else:
                self._drop_batch(MEMORIES, batch_id)
        if found and removed is None:
            # The record was unparseable but is gone; keep a minimal view of it
            removed = Memory(id=memory_id)
        return removed

    # Legacy cluster records
    def list_cluster_records(self) -> List[StoredClusterRecord]:
        out: List[StoredClusterRecord] = []
        for batch_id, records in self._iter_batches(CLUSTERS):
            out.extend(StoredClusterRecord(source=batch_id, payload=raw) for raw in records)
        return out

    def save_cluster_records(self, batch_id: str, records: List[Dict[str, Any]]) -> None:
        self._write_batch(CLUSTERS, batch_id, list(records))

    def purge_cluster_records(self, predicate: Callable[[StoredClusterRecord], bool]) -> int:
        purged = 0
        for batch_id, records in self._iter_batches(CLUSTERS):
            kept = [raw for raw in records if not predicate(StoredClusterRecord(source=batch_id, payload=raw))]
            if len(kept) == len(records):
                continue
            purged += len(records) - len(kept)
            if kept:
                self._write_batch(CLUSTERS, batch_id, kept)
            else:
                self._drop_batch(CLUSTERS, batch_id)
        return purged

    def remove_from_cluster_record(self, record_id: str, memory_id: str) -> bool:
        """Drop ``memory_id`` from the member list of the record with ``record_id``."""

        for batch_id, records in self._iter_batches(CLUSTERS):
            for raw in records:
                if self._raw_id(raw) != record_id:
                    continue
                members = raw.get("memoryIds")
                if not isinstance(members, list):
                    members = raw.get("memories")
                if not isinstance(members, list):
                    return False
                # Early batches embedded whole memory objects instead of ids
                remaining = [m for m in members if self._member_id(m) != memory_id]
                if len(remaining) == len(members):
                    return False
                raw.pop("memories", None)
                raw["memoryIds"] = remaining
                raw["size"] = len(remaining)
                self._write_batch(CLUSTERS, batch_id, records)
                return True
        return False

    def find_cluster_records(self, record_id: str) -> List[StoredClusterRecord]:
        return [r for r in self.list_cluster_records() if self._raw_id(r.payload) == record_id]

    def purge_cluster_record(self, record_id: str) -> int:
        return self.purge_cluster_records(lambda item: self._raw_id(item.payload) == record_id)

    # Oblivion log
    def append_tombstone(self, tombstone: Tombstone) -> None:
        self._append_tombstone_record(tombstone.to_record())

    def list_tombstones(self) -> List[Tombstone]:
        out: List[Tombstone] = []
        for raw in self._read_tombstone_records():
            try:
                out.append(Tombstone.model_validate(raw))
            except ValidationError:
                logger.warning("[storage.tombstone_malformed] entry=%r", raw)
        return out

    # Profile
    def get_profile(self) -> Optional[Dict[str, Any]]:
        try:
            return self._read_profile()
        except StorageError as exc:
            logger.warning("[storage.profile_unreadable] error=%s", exc)
            return None

    def save_profile(self, profile: Dict[str, Any]) -> None:
        self._write_profile(profile)
