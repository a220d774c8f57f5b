from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from memory_garden.models import Memory


FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def months_ago(months: int) -> str:
    return (FIXED_NOW - timedelta(days=30 * months + 1)).isoformat()


def make_memory(memory_id: str, **fields: Any) -> Memory:
    record: Dict[str, Any] = {
        "id": memory_id,
        "type": "text",
        "content": f"Notes for {memory_id}",
        "size": 100,
        "createdAt": months_ago(2),
    }
    record.update(fields)
    return Memory.model_validate(record)
