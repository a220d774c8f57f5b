from __future__ import annotations

import logging
from typing import List, Optional

from memory_garden.errors import ClusterNotFoundError, MemoryNotFoundError, StorageError
from memory_garden.models import DeleteResult, Memory, Tombstone
from memory_garden.services.actions import Action, normalize_action
from memory_garden.services.reconciler import ClusterService, migrate_cluster_record
from memory_garden.storage.base import MemoryRepository, StoredClusterRecord


logger = logging.getLogger("memory_garden.deleter")


class CascadingDeleter:
    """Permanent deletion of memories, always leaving a tombstone behind."""

    def __init__(self, repository: MemoryRepository, clusters: Optional[ClusterService] = None) -> None:
        self.repository = repository
        self.clusters = clusters or ClusterService(repository)

    def _remove_artifact(self, memory: Memory) -> None:
        stored = memory.metadata.get("storedFilename")
        if not isinstance(stored, str) or not stored:
            return
        try:
            if not self.repository.delete_artifact(stored):
                logger.info("[delete.artifact_missing] memory_id=%s file=%s", memory.id, stored)
        except StorageError as exc:
            # best-effort: the memory record is already gone
            logger.warning("[delete.artifact_failed] memory_id=%s file=%s error=%s", memory.id, stored, exc)

    def _forget(self, memory_id: str, bucket: Action) -> Optional[Tombstone]:
        removed = self.repository.delete_memory(memory_id)
        if removed is None:
            return None
        self._remove_artifact(removed)
        tombstone = Tombstone(id=removed.id, summary=removed.summary, cluster=bucket)
        self.repository.append_tombstone(tombstone)
        return tombstone

    def delete_bucket(self, action: object) -> DeleteResult:
        """Delete every memory currently resolving to ``action``.

        Membership comes from a fresh reconciliation, so overrides and
        predictions are honoured exactly as the listing shows them. Legacy
        cluster records for the same action are purged afterwards.
        """
        target = normalize_action(action)
        bucket = self.clusters.get_cluster(target)

        deleted = 0
        for memory_id in bucket.memory_ids:
            if self._forget(memory_id, target) is not None:
                deleted += 1

        def _matches(stored: StoredClusterRecord) -> bool:
            record = migrate_cluster_record(stored.payload, stored.source)
            return record is not None and record.action == target

        purged = self.repository.purge_cluster_records(_matches)
        logger.info("[delete.bucket] action=%s memories=%s clusters=%s", target.value, deleted, purged)
        return DeleteResult(action=target, memories_deleted=deleted, clusters_deleted=purged)

    def delete_legacy_record(self, record_id: str) -> DeleteResult:
        """Delete a stored legacy cluster record together with the memories it lists.

        Each listed memory that still exists is tombstoned under the bucket it
        currently resolves to. Raises ClusterNotFoundError when no record has
        exactly ``record_id``.
        """
        stored = self.repository.find_cluster_records(record_id)
        if not stored:
            raise ClusterNotFoundError(record_id)

        migrated = [migrate_cluster_record(r.payload, r.source) for r in stored]
        records = [r for r in migrated if r is not None]
        member_ids: List[str] = []
        for record in records:
            for memory_id in record.memory_ids:
                if memory_id not in member_ids:
                    member_ids.append(memory_id)

        deleted = 0
        for memory_id in member_ids:
            bucket = self.clusters.effective_action(memory_id)
            if bucket is not None and self._forget(memory_id, bucket) is not None:
                deleted += 1

        purged = self.repository.purge_cluster_record(record_id)
        action = records[0].action if records else Action.KEEP
        logger.info(
            "[delete.legacy_record] record_id=%s action=%s memories=%s clusters=%s",
            record_id,
            action.value,
            deleted,
            purged,
        )
        return DeleteResult(action=action, memories_deleted=deleted, clusters_deleted=purged)

    def delete_memory(self, memory_id: str) -> Tombstone:
        """Move a single memory to the oblivion log."""

        bucket = self.clusters.effective_action(memory_id)
        tombstone = self._forget(memory_id, bucket) if bucket is not None else None
        if tombstone is None:
            raise MemoryNotFoundError(memory_id)
        logger.info("[delete.memory] memory_id=%s bucket=%s", memory_id, bucket.value)
        return tombstone

    def remove_memory_from_cluster(self, cluster_id: str, memory_id: str) -> Memory:
        """Clear the membership fields on one memory without deleting it.

        A stored legacy record with ``cluster_id`` also stops listing the
        memory, so it no longer acts as a hint for it.
        """
        memory = self.repository.get_memory(memory_id)
        if memory is None:
            raise MemoryNotFoundError(memory_id)
        memory.cluster = None
        memory.cluster_name = None
        self.repository.update_memory(memory)
        if self.repository.remove_from_cluster_record(cluster_id, memory_id):
            logger.info("[delete.decluster] cluster_id=%s memory_id=%s record_updated=true", cluster_id, memory_id)
        else:
            logger.info("[delete.decluster] cluster_id=%s memory_id=%s record_updated=false", cluster_id, memory_id)
        return memory
