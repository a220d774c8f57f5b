from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from memory_garden.errors import MemoryNotFoundError
from memory_garden.models import Memory, Tombstone
from memory_garden.services.actions import Action, is_blank, normalize_action
from memory_garden.services.deleter import CascadingDeleter
from memory_garden.storage.base import MemoryRepository


logger = logging.getLogger("memory_garden.memories")


class MemoryService:
    """User-facing reads and override edits on memory records."""

    def __init__(self, repository: MemoryRepository, deleter: Optional[CascadingDeleter] = None) -> None:
        self.repository = repository
        self.deleter = deleter or CascadingDeleter(repository)

    def list_memories(self) -> List[Memory]:
        return self.repository.list_memories()

    def get_memory(self, memory_id: str) -> Memory:
        memory = self.repository.get_memory(memory_id)
        if memory is None:
            raise MemoryNotFoundError(memory_id)
        return memory

    def set_override(self, memory_id: str, action: Any) -> Memory:
        """Pin a memory to a bucket. Blank values clear the override instead."""

        if is_blank(action):
            return self.clear_override(memory_id)
        memory = self.get_memory(memory_id)
        normalized: Action = normalize_action(action)
        memory.override_action = normalized.value
        memory.user_overridden = True
        self.repository.update_memory(memory)
        logger.info("[memories.override] memory_id=%s action=%s raw=%r", memory_id, normalized.value, action)
        return memory

    def clear_override(self, memory_id: str) -> Memory:
        memory = self.get_memory(memory_id)
        memory.override_action = None
        memory.user_overridden = False
        self.repository.update_memory(memory)
        logger.info("[memories.override_cleared] memory_id=%s", memory_id)
        return memory

    def delete_memory(self, memory_id: str) -> Tombstone:
        return self.deleter.delete_memory(memory_id)


class ProfileService:
    """User profile used only to enrich classifier prompts."""

    def __init__(self, repository: MemoryRepository) -> None:
        self.repository = repository

    def get_profile(self) -> Optional[Dict[str, Any]]:
        return self.repository.get_profile()

    def save_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        self.repository.save_profile(profile)
        logger.info("[profile.saved] keys=%s", sorted(profile))
        return profile
