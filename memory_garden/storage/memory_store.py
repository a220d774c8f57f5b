"""
In-memory repository.

Ephemeral; used for tests and for running the API without a data directory.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

from memory_garden.errors import StorageError
from memory_garden.storage.base import CLUSTERS, MEMORIES, MemoryRepository


class InMemoryRepository(MemoryRepository):
    def __init__(self) -> None:
        self._batches: Dict[str, Dict[str, Any]] = {MEMORIES: {}, CLUSTERS: {}}
        self._tombstones: List[Dict[str, Any]] = []
        self._profile: Optional[Dict[str, Any]] = None
        self.artifacts: Dict[str, bytes] = {}

    def _batch_ids(self, kind: str) -> List[str]:
        return sorted(self._batches.get(kind, {}))

    def _read_batch(self, kind: str, batch_id: str) -> Any:
        try:
            return copy.deepcopy(self._batches[kind][batch_id])
        except KeyError as exc:
            raise StorageError(f"unknown batch {kind}/{batch_id}") from exc

    def _write_batch(self, kind: str, batch_id: str, records: List[Any]) -> None:
        self._batches.setdefault(kind, {})[batch_id] = copy.deepcopy(records)

    def _drop_batch(self, kind: str, batch_id: str) -> None:
        self._batches.get(kind, {}).pop(batch_id, None)

    def put_raw_batch(self, kind: str, batch_id: str, payload: Any) -> None:
        """Store an arbitrary payload, including shapes older releases wrote."""

        self._batches.setdefault(kind, {})[batch_id] = copy.deepcopy(payload)

    def _append_tombstone_record(self, record: Dict[str, Any]) -> None:
        self._tombstones.append(dict(record))

    def _read_tombstone_records(self) -> List[Any]:
        return [dict(r) for r in self._tombstones]

    def _read_profile(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._profile)

    def _write_profile(self, profile: Dict[str, Any]) -> None:
        self._profile = copy.deepcopy(profile)

    def delete_artifact(self, stored_filename: str) -> bool:
        return self.artifacts.pop(stored_filename, None) is not None
