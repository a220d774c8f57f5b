"""Canonical retention actions and the normalizer applied wherever one is read."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Tuple


class Action(str, Enum):
    KEEP = "keep"
    COMPRESS = "compress"
    LOW_RELEVANCE = "low_relevance"
    DELETE = "delete"


# Bucket order used for reconciliation output
ACTIONS: Tuple[Action, ...] = (
    Action.KEEP,
    Action.COMPRESS,
    Action.LOW_RELEVANCE,
    Action.DELETE,
)

ACTION_NAMES: Dict[Action, str] = {
    Action.KEEP: "Keep",
    Action.COMPRESS: "Compress",
    Action.LOW_RELEVANCE: "Low Future Relevance",
    Action.DELETE: "Delete",
}

LEGACY_ALIASES: Dict[str, Action] = {
    "forget": Action.LOW_RELEVANCE,
}

_BY_VALUE: Dict[str, Action] = {a.value: a for a in ACTIONS}


def normalize_action(raw: Any) -> Action:
    """Map any stored, cached, model-produced or user-supplied value to an Action.

    The mapping is total: None, blanks, non-strings and unknown values all
    become ``keep``; the legacy alias ``forget`` becomes ``low_relevance``.
    """
    if isinstance(raw, Action):
        return raw
    if not isinstance(raw, str):
        return Action.KEEP
    value = raw.strip().lower()
    if not value:
        return Action.KEEP
    if value in LEGACY_ALIASES:
        return LEGACY_ALIASES[value]
    return _BY_VALUE.get(value, Action.KEEP)


def is_blank(raw: Any) -> bool:
    """True when a raw action field should be treated as unset."""

    if raw is None:
        return True
    return isinstance(raw, str) and raw.strip() == ""
