from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from memory_garden.models import Memory
from memory_garden.services.lifecycle import parse_timestamp


CLASSIFICATION_PROMPT = """You are an AI memory management assistant. Analyze the following memory and decide what should happen to it: keep, compress, low_relevance or delete.

Memory Details:
{details}
{profile}
Content:
{content}

Guidelines:
- KEEP: important, meaningful memories with high emotional value, recent documents needed for reference, or significant life events
- COMPRESS: moderately important memories that could be stored more efficiently, older but still relevant content
- LOW_RELEVANCE: outdated or low quality content unlikely to matter in the future (blurry photos, stale notices)
- DELETE: duplicates, junk or content with no future value at all

Respond with a single JSON object and nothing else:
{{
  "relevance1Month": 0.0-1.0,
  "relevance1Year": 0.0-1.0,
  "attachment": 0.0-1.0,
  "action": "keep|compress|low_relevance|delete",
  "confidence": 0.0-1.0,
  "sentiment": "positive|negative|neutral|mixed",
  "sentimentScore": -1.0 to 1.0,
  "summary": "one sentence summary of the memory",
  "explanation": "1-2 sentences explaining the decision"
}}"""

# (metadata key, label) pairs rendered when present
_METADATA_HINTS = [
    ("imageQuality", "Image quality"),
    ("qualityHint", "Quality hint"),
    ("pageCount", "Pages"),
    ("columns", "Columns"),
    ("rows", "Rows"),
    ("topic", "Topic"),
    ("sentimentHint", "Sentiment hint"),
    ("importance", "Importance level"),
    ("category", "Category"),
]


def build_context_lines(memory: Memory, age_months: int) -> List[str]:
    lines = [f"- Type: {memory.type or 'unknown'}", f"- Age: {age_months} months old"]
    created = parse_timestamp(memory.created_at)
    if created is not None:
        lines.append(f"- Created: {created.date().isoformat()}")
    if memory.title:
        lines.append(f"- Title: {memory.title}")
    if memory.filename:
        lines.append(f"- Filename: {memory.filename}")
    if memory.summary:
        lines.append(f"- Summary: {memory.summary}")

    meta = memory.metadata
    for key, label in _METADATA_HINTS:
        value = meta.get(key)
        if value not in (None, "", []):
            lines.append(f"- {label}: {value}")
    if meta.get("width") and meta.get("height"):
        lines.append(f"- Dimensions: {meta['width']}x{meta['height']}")

    flags = memory.flags()
    if flags:
        lines.append(f"- Flags: {', '.join(flags)}")
    tags = memory.all_tags()
    if tags:
        lines.append(f"- Tags: {', '.join(tags)}")
    if memory.size:
        lines.append(f"- Size: {memory.size} bytes")
    return lines


def render_profile(profile: Optional[Dict[str, Any]]) -> str:
    if not profile:
        return ""
    if isinstance(profile.get("summary"), str) and profile["summary"].strip():
        body = profile["summary"].strip()
    else:
        body = json.dumps(profile, sort_keys=True, ensure_ascii=False, default=str)
    return f"\nUser profile (use it to judge personal relevance):\n{body[:1500]}\n"


def build_classification_prompt(
    memory: Memory,
    *,
    age_months: int,
    profile: Optional[Dict[str, Any]] = None,
    preview_chars: int = 1000,
) -> str:
    content = (memory.content or memory.summary or "").strip()
    preview = content[:preview_chars]
    if len(content) > preview_chars:
        preview += "..."
    return CLASSIFICATION_PROMPT.format(
        details="\n".join(build_context_lines(memory, age_months)),
        profile=render_profile(profile),
        content=preview or "(no text content)",
    )
