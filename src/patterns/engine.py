"""Mode-aware pattern detection with merge, confidence floor and refresh."""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Protocol, Sequence

import structlog

from channels import Published
from observability import AnalyticsSink, emit, metrics
from ranking.ranker import QueryContext
from records.models import Record
from records.store import PayloadStore
from resources.selector import ResourceModeSelector
from shared_types import Capability, PatternType, ProcessingMode

from .models import Pattern

logger = structlog.get_logger()

PAYLOAD_KIND = "pattern"


class PatternDetector(Protocol):
    name: str

    async def detect(
        self, records: Sequence[Record], context: QueryContext | None = None
    ) -> list[Pattern]: ...


def merge_patterns(patterns: Sequence[Pattern], floor: float = 0.0) -> list[Pattern]:
    """Keep the highest-confidence pattern per type, drop those under floor.

    Result is sorted by confidence descending.
    """
    best: dict[PatternType, Pattern] = {}
    for pattern in patterns:
        current = best.get(pattern.type)
        if current is None or pattern.confidence > current.confidence:
            best[pattern.type] = pattern
    kept = [p for p in best.values() if p.confidence >= floor]
    return sorted(kept, key=lambda p: p.confidence, reverse=True)


class PatternEngine:
    """Chooses detectors from the processing mode and merges their output.

    Active patterns are published on `active` (a tuple, replaced wholesale on
    each refresh).
    """

    def __init__(
        self,
        heavy: PatternDetector,
        light: PatternDetector,
        selector: ResourceModeSelector,
        config: dict | None = None,
        analytics: AnalyticsSink | None = None,
        store: PayloadStore | None = None,
    ):
        self.heavy = heavy
        self.light = light
        self.selector = selector
        self.analytics = analytics
        self.store = store
        cfg = config or {}
        self.confidence_floor = cfg.get("confidence_floor", 0.6)
        self.decay_factor = cfg.get("decay_factor", 0.9)
        self.evidence_ttl = timedelta(days=cfg.get("evidence_ttl_days", 30))
        self.strategies: dict[ProcessingMode, tuple[PatternDetector, ...]] = {
            ProcessingMode.FULL: (heavy,),
            ProcessingMode.HYBRID: (heavy, light),
            ProcessingMode.LIGHTWEIGHT: (light,),
        }
        self.active: Published[tuple[Pattern, ...]] = Published((), name="active_patterns")
        self._refresh_lock = asyncio.Lock()

    def load(self) -> tuple[Pattern, ...]:
        """Restore persisted active patterns, if a store is configured."""
        if self.store is None:
            return self.active.value
        restored = []
        for payload in self.store.all(PAYLOAD_KIND):
            try:
                restored.append(Pattern.from_dict(payload))
            except (KeyError, ValueError) as e:
                logger.warning("pattern_restore_skipped", error=str(e))
        self.active.publish(tuple(merge_patterns(restored, self.confidence_floor)))
        logger.info("patterns_loaded", count=len(self.active.value))
        return self.active.value

    async def detectors_for_mode(self, mode: ProcessingMode) -> tuple[PatternDetector, ...]:
        detectors = self.strategies[mode]
        if mode == ProcessingMode.HYBRID:
            if not await self.selector.should_use_expensive_path(Capability.EMBEDDING):
                detectors = tuple(d for d in detectors if d is not self.heavy)
        return detectors

    async def detect(
        self, records: Sequence[Record], context: QueryContext | None = None
    ) -> list[Pattern]:
        """Run the detectors the current mode allows and merge the results."""
        mode = self.selector.current_mode()
        detectors = await self.detectors_for_mode(mode)
        records = list(records)

        with metrics.timer("patterns.detect"):
            results = await asyncio.gather(
                *(self._run_detector(d, records, context) for d in detectors)
            )
        found = [p for batch in results for p in batch]
        merged = merge_patterns(found, self.confidence_floor)

        logger.info(
            "patterns_detected",
            mode=mode.value,
            detectors=[d.name for d in detectors],
            candidates=len(found),
            kept=len(merged),
        )
        return merged

    async def _run_detector(
        self,
        detector: PatternDetector,
        records: list[Record],
        context: QueryContext | None,
    ) -> list[Pattern]:
        try:
            return list(await detector.detect(records, context))
        except Exception as e:
            logger.warning("pattern_detector_failed", detector=detector.name, error=str(e))
            metrics.counter(f"patterns.{detector.name}_failure")
            return []

    async def refresh(
        self, records: Sequence[Record], context: QueryContext | None = None
    ) -> tuple[Pattern, ...]:
        """Re-detect and update the active set.

        Re-detected types replace the old pattern (keeping its id), the rest
        decay and are dropped under the floor or when their evidence expires.
        """
        async with self._refresh_lock:
            records = list(records)
            now = (context.now if context else None) or datetime.now()
            fresh = {p.type: p for p in await self.detect(records, context)}
            record_times = {r.id: r.timestamp for r in records}

            updated = []
            for old in self.active.value:
                if old.type in fresh:
                    new = fresh.pop(old.type)
                    updated.append(replace(new, id=old.id, created_at=old.created_at))
                    continue
                decayed = old.with_confidence(old.confidence * self.decay_factor)
                if decayed.confidence < self.confidence_floor:
                    logger.debug("pattern_decayed_out", pattern_id=old.id, type=old.type.value)
                    continue
                if self._evidence_expired(old, record_times, now):
                    logger.debug("pattern_evidence_expired", pattern_id=old.id)
                    continue
                updated.append(decayed)
            updated.extend(fresh.values())

            active = tuple(merge_patterns(updated, self.confidence_floor))
            self.active.publish(active)
            self._persist(active)
            emit(self.analytics, "patterns_refreshed", count=len(active))
            return active

    def _evidence_expired(
        self, pattern: Pattern, record_times: dict[str, datetime], now: datetime
    ) -> bool:
        known = [record_times[i] for i in pattern.supporting_record_ids if i in record_times]
        newest = max(known) if known else pattern.updated_at
        return now - newest > self.evidence_ttl

    def _persist(self, active: tuple[Pattern, ...]) -> None:
        if self.store is None:
            return
        self.store.replace_all(PAYLOAD_KIND, {p.id: p.to_dict() for p in active})
