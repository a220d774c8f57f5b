"""
Cluster API Router

The four action buckets are recomputed on every request. Deleting a bucket
cascades to every memory it holds.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from memory_garden.dependencies.services import Services, get_services
from memory_garden.errors import ClusterNotFoundError, MemoryNotFoundError
from memory_garden.schemas import ClusterListResponse, ClusterView, DeleteClusterResponse
from memory_garden.services.reconciler import parse_cluster_id, resolve_bucket

logger = logging.getLogger("memory_garden.api.clusters")

router = APIRouter(prefix="/v1/clusters", tags=["clusters"])


@router.get("", response_model=ClusterListResponse)
def list_clusters(services: Services = Depends(get_services)) -> ClusterListResponse:
    clusters = services.clusters.list_clusters()
    return ClusterListResponse(clusters=[ClusterView.from_cluster(c) for c in clusters])


@router.get("/{cluster_id}", response_model=ClusterView)
def get_cluster(cluster_id: str, services: Services = Depends(get_services)) -> ClusterView:
    try:
        action = resolve_bucket(cluster_id)
    except ClusterNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ClusterView.from_cluster(services.clusters.get_cluster(action))


@router.delete("/{cluster_id}", response_model=DeleteClusterResponse)
def delete_cluster(cluster_id: str, services: Services = Depends(get_services)) -> DeleteClusterResponse:
    """Delete every memory in the bucket and purge its legacy records.

    An id naming a stored legacy record deletes that record and the memories
    it lists.
    """
    parsed = parse_cluster_id(cluster_id)
    if parsed.kind == "action" and parsed.action is not None:
        result = services.deleter.delete_bucket(parsed.action)
    else:
        try:
            result = services.deleter.delete_legacy_record(parsed.record_id or cluster_id)
        except ClusterNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
    logger.info("[api.clusters.delete] cluster_id=%s deleted=%s", cluster_id, result.memories_deleted)
    return DeleteClusterResponse.from_result(result)


@router.delete("/{cluster_id}/memories/{memory_id}")
def remove_memory_from_cluster(
    cluster_id: str,
    memory_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    parsed = parse_cluster_id(cluster_id)
    record_id = parsed.record_id if parsed.kind == "legacy" and parsed.record_id else cluster_id
    try:
        memory = services.deleter.remove_memory_from_cluster(record_id, memory_id)
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Memory not found: {memory_id}")
    return {"removed": True, "memory": memory.to_record()}
