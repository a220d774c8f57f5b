from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from memory_garden.services.actions import ACTION_NAMES, Action, normalize_action


SENTIMENT_LABELS = {"positive", "negative", "neutral", "mixed"}

# Documented defaults applied when a score is missing or unparseable
SCORE_DEFAULTS: Dict[str, float] = {
    "relevance_1_month": 0.5,
    "relevance_1_year": 0.5,
    "attachment": 0.5,
    "confidence": 0.6,
}


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_text(value: Any) -> Optional[str]:
    """Strings pass through, numbers are stringified, anything else is dropped."""

    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_raw_action(value: Any) -> Optional[str]:
    # Malformed values are kept as text so the normalizer maps them to keep
    if value is None or isinstance(value, str):
        return value
    return str(value)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Sentiment(BaseModel):
    label: Literal["positive", "negative", "neutral", "mixed"] = "neutral"
    score: float = 0.0

    @field_validator("label", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in SENTIMENT_LABELS:
            return value.strip().lower()
        return "neutral"

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float:
        number = _as_float(value)
        return 0.0 if number is None else clamp(number, -1.0, 1.0)


class Analysis(BaseModel):
    """The classifier's verdict on one memory.

    Every constructor path clamps the scores and normalizes the action, so an
    Analysis read back from a cache entry or a legacy memory file is always
    valid.
    """

    model_config = ConfigDict(populate_by_name=True)

    relevance_1_month: float = Field(default=0.5, alias="relevance1Month")
    relevance_1_year: float = Field(default=0.5, alias="relevance1Year")
    attachment: float = 0.5
    action: Action = Field(
        default=Action.KEEP,
        alias="predictedAction",
        validation_alias=AliasChoices("predictedAction", "action"),
    )
    sentiment: Sentiment = Field(default_factory=Sentiment)
    confidence: float = 0.6
    explanation: str = ""
    summary: Optional[str] = None
    nemotron_analyzed: bool = Field(default=False, alias="nemotronAnalyzed")
    timestamp: Optional[str] = Field(
        default=None,
        alias="nemotronUpdatedAt",
        validation_alias=AliasChoices("nemotronUpdatedAt", "timestamp"),
    )

    @field_validator("relevance_1_month", "relevance_1_year", "attachment", "confidence", mode="before")
    @classmethod
    def _coerce_unit(cls, value: Any, info: ValidationInfo) -> float:
        number = _as_float(value)
        if number is None:
            return SCORE_DEFAULTS[info.field_name]
        return clamp(number, 0.0, 1.0)

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> Action:
        return normalize_action(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _coerce_sentiment(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"label": value}
        if isinstance(value, (dict, Sentiment)):
            return value
        return {}

    @field_validator("summary", "timestamp", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("explanation", mode="before")
    @classmethod
    def _coerce_explanation(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("nemotron_analyzed", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return value is True

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Memory(BaseModel):
    """One ingested content item, in the shape persisted by the scanner.

    Unknown keys written by older versions are preserved on round trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str = "unknown"
    title: Optional[str] = None
    filename: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    size: int = 0
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    override_action: Optional[str] = Field(default=None, alias="overrideAction")
    user_overridden: bool = Field(default=False, alias="userOverridden")
    predicted_action: Optional[str] = Field(default=None, alias="predictedAction")
    analysis: Optional[Analysis] = Field(default=None, alias="nemotronAnalysis")
    nemotron_analyzed: bool = Field(default=False, alias="nemotronAnalyzed")
    nemotron_updated_at: Optional[str] = Field(default=None, alias="nemotronUpdatedAt")
    nemotron_explanation: Optional[str] = Field(default=None, alias="nemotronExplanation")
    nemotron_confidence: Optional[float] = Field(default=None, alias="nemotronConfidence")
    cluster: Optional[str] = None
    cluster_name: Optional[str] = Field(default=None, alias="clusterName")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value)
        raise ValueError("memory id must be a non-empty string")

    @field_validator(
        "title",
        "filename",
        "content",
        "summary",
        "nemotron_updated_at",
        "nemotron_explanation",
        "cluster",
        "cluster_name",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("override_action", "predicted_action", mode="before")
    @classmethod
    def _coerce_raw_action(cls, value: Any) -> Optional[str]:
        return _as_raw_action(value)

    @field_validator("nemotron_confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> Optional[float]:
        number = _as_float(value)
        return None if number is None else clamp(number, 0.0, 1.0)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> str:
        return value if isinstance(value, str) and value else "unknown"

    @field_validator("size", mode="before")
    @classmethod
    def _coerce_size(cls, value: Any) -> int:
        number = _as_float(value)
        if number is None or number < 0:
            return 0
        return int(number)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Optional[str]:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, str):
            return value
        return None

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(tag) for tag in value if tag is not None]

    @field_validator("analysis", mode="before")
    @classmethod
    def _coerce_analysis(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, Analysis)) else None

    @field_validator("user_overridden", "nemotron_analyzed", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return value is True

    def all_tags(self) -> List[str]:
        """Top-level tags plus ``metadata.tags``, lowercased and de-duplicated."""

        merged: List[str] = []
        meta_tags = self.metadata.get("tags")
        for tag in list(self.tags) + (meta_tags if isinstance(meta_tags, list) else []):
            value = str(tag).strip().lower()
            if value and value not in merged:
                merged.append(value)
        return merged

    def flags(self) -> List[str]:
        raw = self.metadata.get("flags")
        if not isinstance(raw, list):
            return []
        return [str(flag).strip().lower() for flag in raw if flag is not None]

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClusterId(BaseModel):
    """Structured bucket identifier: an action bucket or a stored legacy record."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["action", "legacy"] = "action"
    action: Optional[Action] = None
    record_id: Optional[str] = None

    @classmethod
    def for_action(cls, action: Action) -> "ClusterId":
        return cls(kind="action", action=action)

    @classmethod
    def for_record(cls, record_id: str) -> "ClusterId":
        return cls(kind="legacy", record_id=record_id)

    def __str__(self) -> str:
        if self.kind == "action" and self.action is not None:
            return f"action:{self.action.value}"
        return f"legacy:{self.record_id}"


class Cluster(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: ClusterId
    name: str
    type: Literal["action"] = "action"
    action: Action
    memory_ids: List[str] = Field(default_factory=list, alias="memoryIds")
    size: int = 0
    total_size: int = Field(default=0, alias="totalSize")

    @classmethod
    def empty(cls, action: Action) -> "Cluster":
        return cls(id=ClusterId.for_action(action), name=ACTION_NAMES[action], action=action)


class LegacyClusterRecord(BaseModel):
    """Canonical form of a cluster record written by an older pipeline run."""

    id: Optional[str] = None
    name: Optional[str] = None
    action: Action = Action.KEEP
    memory_ids: List[str] = Field(default_factory=list)
    source: Optional[str] = None


class Tombstone(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    summary: Optional[str] = None
    cluster: Action = Action.KEEP
    deleted_at: str = Field(default_factory=utc_now_iso, alias="deletedAt")

    @field_validator("cluster", mode="before")
    @classmethod
    def _coerce_cluster(cls, value: Any) -> Action:
        return normalize_action(value)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DeleteResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Action
    memories_deleted: int = Field(default=0, alias="memoriesDeleted")
    clusters_deleted: int = Field(default=0, alias="clustersDeleted")
