"""Memory classification against an external generative model.

``Classifier.classify`` is total: whatever goes wrong on the way to a model
verdict (missing credential, auth rejection, timeout, unparseable answer) the
memory still gets an Analysis, produced by the age/tag heuristics with
``nemotron_analyzed=False``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from memory_garden import config
from memory_garden.errors import ClassifierError, ConfigError
from memory_garden.models import Analysis, Memory
from memory_garden.services.actions import Action
from memory_garden.services.analysis_cache import AnalysisCache
from memory_garden.services.fingerprint import fingerprint
from memory_garden.services.lifecycle import age_in_months
from memory_garden.services.llm_utils import CompletionRequest, call_completion, parse_model_output
from memory_garden.services.prompts import build_classification_prompt


logger = logging.getLogger("memory_garden.classifier")

MIN_EXPLANATION_LENGTH = 20
SENTIMENTAL_TAGS = frozenset({"childhood", "family", "wedding"})
HEURISTIC_CONFIDENCE = 0.4

CompletionFn = Callable[[CompletionRequest], str]
ProfileProvider = Callable[[], Optional[Dict[str, Any]]]


@dataclass
class ClassifierSettings:
    api_key: Optional[str] = None
    base_url: str = "https://integrate.api.nvidia.com/v1"
    model: str = "meta/llama-3.1-70b-instruct"
    enabled: bool = True
    temperature: float = 0.0
    max_tokens: int = 500
    timeout_ms: int = 30000
    batch_size: int = 5
    batch_delay_ms: int = 1000
    preview_chars: int = 1000
    use_langfuse: bool = False

    @classmethod
    def from_env(cls) -> "ClassifierSettings":
        return cls(
            api_key=config.get_nemotron_api_key(),
            base_url=config.get_nemotron_api_url(),
            model=config.get_nemotron_model(),
            enabled=config.is_classifier_enabled(),
            temperature=config.get_classifier_temperature(),
            max_tokens=config.get_classifier_max_tokens(),
            timeout_ms=config.get_classifier_timeout_ms(),
            batch_size=config.get_classifier_batch_size(),
            batch_delay_ms=config.get_classifier_batch_delay_ms(),
            preview_chars=config.get_classifier_preview_chars(),
            use_langfuse=config.is_langfuse_enabled(),
        )


def _is_blurry(memory: Memory) -> bool:
    if "blurry" in memory.flags():
        return True
    for key in ("imageQuality", "qualityHint"):
        value = memory.metadata.get(key)
        if isinstance(value, str) and value.strip().lower() == "blurry":
            return True
    return False


def synthesize_explanation(memory: Memory, analysis: Analysis, age_months: int) -> str:
    parts = [
        f"{age_months} months old",
        f"{analysis.relevance_1_year:.0%} expected relevance in a year",
        f"{analysis.attachment:.0%} attachment",
    ]
    if _is_blurry(memory):
        parts.append("flagged as blurry")
    return f"Suggested {analysis.action.value}: " + ", ".join(parts) + "."


def _pick(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def validate_analysis(raw: Dict[str, Any], memory: Memory, *, age_months: int, now: datetime) -> Analysis:
    """Turn a parsed model answer into a valid Analysis, correcting in place.

    Out-of-range numbers are clamped, missing ones take the documented
    defaults, unknown actions normalize to keep and short explanations are
    rebuilt from the evidence.
    """
    sentiment_raw = raw.get("sentiment")
    if isinstance(sentiment_raw, dict):
        sentiment: Dict[str, Any] = dict(sentiment_raw)
    else:
        sentiment = {"label": sentiment_raw}
    if "score" not in sentiment or sentiment["score"] is None:
        sentiment["score"] = _pick(raw, "sentimentScore", "sentiment_score")

    summary = raw.get("summary")
    analysis = Analysis(
        relevance_1_month=_pick(raw, "relevance1Month", "relevance_1_month"),
        relevance_1_year=_pick(raw, "relevance1Year", "relevance_1_year"),
        attachment=raw.get("attachment"),
        action=_pick(raw, "action", "predictedAction"),
        sentiment=sentiment,
        confidence=raw.get("confidence"),
        explanation=raw.get("explanation"),
        summary=summary.strip() if isinstance(summary, str) and summary.strip() else None,
        nemotron_analyzed=True,
        timestamp=now.isoformat(),
    )
    if len(analysis.explanation) < MIN_EXPLANATION_LENGTH:
        analysis.explanation = synthesize_explanation(memory, analysis, age_months)
    return analysis


def heuristic_analysis(memory: Memory, *, age_months: int, now: datetime) -> Analysis:
    """Rule-based verdict used whenever the model is unavailable."""

    if age_months > 24:
        relevance_1_month, relevance_1_year = 0.3, 0.2
    elif age_months > 12:
        relevance_1_month, relevance_1_year = 0.6, 0.4
    else:
        relevance_1_month, relevance_1_year = 0.8, 0.7
    attachment = 0.5

    if relevance_1_year < 0.2 and age_months > 24:
        action = Action.LOW_RELEVANCE
    elif relevance_1_month < 0.4 or relevance_1_year < 0.3:
        action = Action.COMPRESS
    else:
        action = Action.KEEP

    if _is_blurry(memory):
        action = Action.LOW_RELEVANCE
        relevance_1_year = min(relevance_1_year, 0.2)

    if SENTIMENTAL_TAGS.intersection(memory.all_tags()):
        attachment = max(attachment, 0.8)
        if action in (Action.LOW_RELEVANCE, Action.DELETE):
            action = Action.COMPRESS

    analysis = Analysis(
        relevance_1_month=relevance_1_month,
        relevance_1_year=relevance_1_year,
        attachment=attachment,
        action=action,
        confidence=HEURISTIC_CONFIDENCE,
        summary=memory.summary,
        nemotron_analyzed=False,
        timestamp=now.isoformat(),
    )
    analysis.explanation = "Heuristic analysis (classifier unavailable). " + synthesize_explanation(
        memory, analysis, age_months
    )
    return analysis


FINGERPRINT_LOCK_STRIPES = 64


class Classifier:
    """Cache-first classifier with heuristic fallback."""

    def __init__(
        self,
        cache: AnalysisCache,
        settings: Optional[ClassifierSettings] = None,
        *,
        completion_fn: Optional[CompletionFn] = None,
        profile_provider: Optional[ProfileProvider] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.cache = cache
        self.settings = settings or ClassifierSettings.from_env()
        self._completion_fn = completion_fn or self._default_completion
        self._profile_provider = profile_provider
        self._now = now
        # Identical fingerprints always map to the same stripe
        self._fingerprint_locks: List[threading.Lock] = [threading.Lock() for _ in range(FINGERPRINT_LOCK_STRIPES)]

    def _default_completion(self, request: CompletionRequest) -> str:
        if not self.settings.enabled:
            raise ConfigError("classifier disabled via USE_NEMOTRON")
        return call_completion(
            request,
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            model=self.settings.model,
            timeout_s=max(1.0, self.settings.timeout_ms / 1000),
            use_langfuse=self.settings.use_langfuse,
        )

    def _lock_for(self, digest: str) -> threading.Lock:
        return self._fingerprint_locks[hash(digest) % len(self._fingerprint_locks)]

    def _profile(self) -> Optional[Dict[str, Any]]:
        if self._profile_provider is None:
            return None
        try:
            return self._profile_provider()
        except Exception as exc:
            logger.warning("[classifier.profile_unavailable] error=%s", exc)
            return None

    def classify(self, memory: Memory) -> Analysis:
        fp = fingerprint(memory)
        # Serialize work per fingerprint so identical memories share one call
        with self._lock_for(fp.digest):
            cached = self.cache.get(fp.digest)
            if cached is not None and cached.nemotron_analyzed:
                logger.debug("[classifier.cache_hit] memory_id=%s fingerprint=%s", memory.id, fp.digest)
                return cached

            now = self._now()
            age = age_in_months(memory.created_at, now)
            try:
                prompt = build_classification_prompt(
                    memory,
                    age_months=age,
                    profile=self._profile(),
                    preview_chars=self.settings.preview_chars,
                )
                request = CompletionRequest(
                    prompt=prompt,
                    seed=fp.seed,
                    temperature=self.settings.temperature,
                    max_tokens=self.settings.max_tokens,
                )
                raw = parse_model_output(self._completion_fn(request))
                analysis = validate_analysis(raw, memory, age_months=age, now=now)
            except ClassifierError as exc:
                logger.warning(
                    "[classifier.fallback] memory_id=%s reason=%s error=%s", memory.id, exc.reason, exc
                )
                return heuristic_analysis(memory, age_months=age, now=now)
            except Exception as exc:
                logger.exception("[classifier.fallback] memory_id=%s reason=unexpected error=%s", memory.id, exc)
                return heuristic_analysis(memory, age_months=age, now=now)

            self.cache.put(fp.digest, analysis)
            logger.info(
                "[classifier.ok] memory_id=%s action=%s confidence=%.2f",
                memory.id,
                analysis.action.value,
                analysis.confidence,
            )
            return analysis

    async def classify_batch(self, memories: Sequence[Memory]) -> List[Analysis]:
        """Classify in fixed windows with a courtesy delay between windows.

        Output order matches input order; one failing item never affects the
        rest of the batch.
        """
        size = max(1, self.settings.batch_size)
        delay_s = max(0, self.settings.batch_delay_ms) / 1000
        results: List[Analysis] = []
        for start in range(0, len(memories), size):
            window = list(memories[start : start + size])
            outcomes = await asyncio.gather(
                *(asyncio.to_thread(self.classify, memory) for memory in window),
                return_exceptions=True,
            )
            for memory, outcome in zip(window, outcomes):
                if isinstance(outcome, Exception):
                    logger.error("[classifier.batch_item_failed] memory_id=%s error=%s", memory.id, outcome)
                    now = self._now()
                    outcome = heuristic_analysis(memory, age_months=age_in_months(memory.created_at, now), now=now)
                results.append(outcome)
            logger.info("[classifier.batch] window=%s-%s total=%s", start, start + len(window), len(memories))
            if start + size < len(memories) and delay_s > 0:
                await asyncio.sleep(delay_s)
        return results
