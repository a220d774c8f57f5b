"""Attach classifier verdicts to stored memories.

Two entry points: ``ingest`` for a fresh batch of drafts coming out of the
scanner, and ``refresh`` for the periodic pass over everything already stored.
Both go through ``Classifier.classify_batch`` so window size and pacing are
configured in one place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from memory_garden import config
from memory_garden.models import Analysis, Memory
from memory_garden.services.classifier import Classifier
from memory_garden.services.lifecycle import needs_refresh
from memory_garden.storage.base import MemoryRepository


logger = logging.getLogger("memory_garden.analysis")


@dataclass
class RefreshReport:
    scanned: int = 0
    analyzed: int = 0
    ai: int = 0
    heuristic: int = 0
    persisted: int = 0


def attach_analysis(memory: Memory, analysis: Analysis) -> Memory:
    """Copy the verdict onto the memory record in its persisted shape."""

    memory.analysis = analysis
    memory.predicted_action = analysis.action.value
    memory.nemotron_analyzed = analysis.nemotron_analyzed
    memory.nemotron_updated_at = analysis.timestamp
    memory.nemotron_explanation = analysis.explanation
    memory.nemotron_confidence = analysis.confidence
    if analysis.nemotron_analyzed and analysis.summary:
        memory.summary = analysis.summary
    return memory


class AnalysisService:
    def __init__(
        self,
        classifier: Classifier,
        repository: MemoryRepository,
        refresh_days: Optional[int] = None,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.classifier = classifier
        self.repository = repository
        self.refresh_days = refresh_days if refresh_days is not None else config.get_refresh_days()
        self._now = now

    async def _classify(self, memories: Sequence[Memory]) -> List[Memory]:
        analyses = await self.classifier.classify_batch(memories)
        return [attach_analysis(memory, analysis) for memory, analysis in zip(memories, analyses)]

    async def ingest(self, drafts: Sequence[Memory], batch_id: str) -> List[Memory]:
        """Classify a batch of drafts and persist them as one memory batch."""

        memories = await self._classify(list(drafts))
        self.repository.save_memories(batch_id, memories)
        logger.info(
            "[analysis.ingest] batch=%s count=%s ai=%s",
            batch_id,
            len(memories),
            sum(1 for m in memories if m.nemotron_analyzed),
        )
        return memories

    async def refresh(self, force: bool = False) -> RefreshReport:
        """Re-analyze stored memories lacking a current model verdict.

        With ``force`` every memory is re-run; the cache still answers for
        those whose content has not changed.
        """
        report = RefreshReport()
        memories = self.repository.list_memories()
        report.scanned = len(memories)
        now = self._now()
        pending = [m for m in memories if force or needs_refresh(m, refresh_days=self.refresh_days, now=now)]
        if not pending:
            logger.info("[analysis.refresh] scanned=%s pending=0", report.scanned)
            return report

        updated = await self._classify(pending)
        report.analyzed = len(updated)
        report.ai = sum(1 for m in updated if m.nemotron_analyzed)
        report.heuristic = report.analyzed - report.ai
        report.persisted = self.repository.update_memories(updated)
        logger.info(
            "[analysis.refresh] scanned=%s analyzed=%s ai=%s heuristic=%s persisted=%s",
            report.scanned,
            report.analyzed,
            report.ai,
            report.heuristic,
            report.persisted,
        )
        return report
