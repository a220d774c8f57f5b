from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from memory_garden.models import Cluster, DeleteResult, Memory, Tombstone


class OverrideRequest(BaseModel):
    # Any value is accepted and normalized; null or blank clears the override
    action: Optional[Any] = None


class AnalyzeRequest(BaseModel):
    force: bool = False


class AnalyzeResponse(BaseModel):
    scanned: int
    analyzed: int
    ai: int
    heuristic: int
    persisted: int


class MemoryListResponse(BaseModel):
    memories: List[Dict[str, Any]]
    total: int

    @classmethod
    def from_memories(cls, memories: List[Memory]) -> "MemoryListResponse":
        return cls(memories=[m.to_record() for m in memories], total=len(memories))


class ClusterView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: str
    action: str
    memory_ids: List[str] = Field(alias="memoryIds")
    size: int
    total_size: int = Field(alias="totalSize")

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "ClusterView":
        return cls(
            id=str(cluster.id),
            name=cluster.name,
            type=cluster.type,
            action=cluster.action.value,
            memory_ids=list(cluster.memory_ids),
            size=cluster.size,
            total_size=cluster.total_size,
        )


class ClusterListResponse(BaseModel):
    clusters: List[ClusterView]


class DeleteClusterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    memories_deleted: int = Field(alias="memoriesDeleted")
    clusters_deleted: int = Field(alias="clustersDeleted")

    @classmethod
    def from_result(cls, result: DeleteResult) -> "DeleteClusterResponse":
        return cls(
            action=result.action.value,
            memories_deleted=result.memories_deleted,
            clusters_deleted=result.clusters_deleted,
        )


class TombstoneView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    summary: Optional[str] = None
    cluster: str
    deleted_at: str = Field(alias="deletedAt")

    @classmethod
    def from_tombstone(cls, tombstone: Tombstone) -> "TombstoneView":
        return cls(
            id=tombstone.id,
            summary=tombstone.summary,
            cluster=tombstone.cluster.value,
            deleted_at=tombstone.deleted_at,
        )


class OblivionResponse(BaseModel):
    entries: List[TombstoneView]
    total: int


class ProfileResponse(BaseModel):
    profile: Optional[Dict[str, Any]] = None
