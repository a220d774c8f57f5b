from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict

from memory_garden.models import Memory


SEED_MASK = 0x7FFFFFFF


@dataclass(frozen=True)
class Fingerprint:
    digest: str
    seed: int


def _fingerprint_payload(memory: Memory) -> Dict[str, Any]:
    return {
        "type": memory.type,
        "content": memory.content or memory.summary or "",
        "filename": memory.filename or "",
        "createdAt": memory.created_at or "",
        "size": memory.size,
        "metadata": memory.metadata,
        "tags": list(memory.tags),
    }


def fingerprint(memory: Memory) -> Fingerprint:
    """Content hash of a memory plus the sampling seed derived from it.

    The id is deliberately not part of the payload: two memories with the same
    content and metadata share a fingerprint and therefore a cache entry.
    """
    canonical = json.dumps(
        _fingerprint_payload(memory),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return Fingerprint(digest=digest, seed=seed_from_digest(digest))


def seed_from_digest(digest: str) -> int:
    seed = int(digest[:8], 16) & SEED_MASK
    return seed or 1
