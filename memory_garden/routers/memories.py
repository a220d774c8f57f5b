"""
Memory API Router

Read memories, pin a memory to a bucket, move a single memory to oblivion
and trigger an analysis refresh pass.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from memory_garden.dependencies.services import Services, get_services
from memory_garden.errors import MemoryNotFoundError
from memory_garden.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    MemoryListResponse,
    OverrideRequest,
    TombstoneView,
)

logger = logging.getLogger("memory_garden.api.memories")

router = APIRouter(prefix="/v1/memories", tags=["memories"])


@router.get("", response_model=MemoryListResponse)
def list_memories(services: Services = Depends(get_services)) -> MemoryListResponse:
    return MemoryListResponse.from_memories(services.memories.list_memories())


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_memories(
    body: AnalyzeRequest = AnalyzeRequest(),
    services: Services = Depends(get_services),
) -> AnalyzeResponse:
    report = await services.analysis.refresh(force=body.force)
    return AnalyzeResponse(
        scanned=report.scanned,
        analyzed=report.analyzed,
        ai=report.ai,
        heuristic=report.heuristic,
        persisted=report.persisted,
    )


@router.get("/{memory_id}")
def get_memory(memory_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        return services.memories.get_memory(memory_id).to_record()
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Memory not found: {memory_id}")


@router.put("/{memory_id}/override")
def set_override(
    memory_id: str,
    body: OverrideRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Pin the memory to a bucket; a null action clears the pin."""
    try:
        memory = services.memories.set_override(memory_id, body.action)
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Memory not found: {memory_id}")
    return memory.to_record()


@router.delete("/{memory_id}", response_model=TombstoneView)
def delete_memory(memory_id: str, services: Services = Depends(get_services)) -> TombstoneView:
    try:
        tombstone = services.memories.delete_memory(memory_id)
    except MemoryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Memory not found: {memory_id}")
    return TombstoneView.from_tombstone(tombstone)
