"""Context fusion hub: signals in, one current ContextSnapshot out."""

import asyncio
from datetime import datetime, timedelta
from typing import Iterable

import structlog

from channels import Broadcast, Published
from observability import AnalyticsSink, emit, metrics
from patterns.models import Pattern
from ranking.ranker import RelevanceRanker
from records.models import Record
from resources.selector import ResourceModeSelector
from shared_types import Capability, SignalKind

from .builders import (
    FusionInputs,
    build_activity,
    build_emotional,
    build_location,
    build_system,
    build_time,
    typed_items,
)
from .models import (
    ActivityContext,
    ContextChange,
    ContextSnapshot,
    EmotionalContext,
    LocationContext,
    Signal,
    SystemContext,
    TimeContext,
    aggregate_confidence,
)
from .sources import SignalSource

logger = structlog.get_logger()


def _fingerprint(name: str, component) -> tuple:
    if name == "time":
        event = component.upcoming_event
        return (component.time_of_day, event.title if event else None)
    if name == "location":
        return (component.label,)
    if name == "emotional":
        return (component.current_emotion,)
    if name == "system":
        return (component.state,)
    return (component.current_activity,)


class ContextFusionHub:
    """Combines asynchronous signals into context snapshots.

    One snapshot is current at a time (``hub.current``). Fusion cycles are
    serialized and each works from its own copy of the latest signals, so a
    signal arriving mid-cycle lands in the next cycle.
    """

    def __init__(
        self,
        ranker: RelevanceRanker | None = None,
        selector: ResourceModeSelector | None = None,
        config: dict | None = None,
        analytics: AnalyticsSink | None = None,
    ):
        self.ranker = ranker
        self.selector = selector
        self.analytics = analytics
        cfg = config or {}
        self.change_threshold = cfg.get("significant_change_threshold", 0.3)
        self.signal_ttl = timedelta(seconds=cfg.get("signal_ttl_seconds", 900))
        self.related_limit = cfg.get("related_records_limit", 3)
        self.known_places = frozenset(cfg.get("known_places", []))

        self.sources: list[SignalSource] = []
        self.snapshots: Published[ContextSnapshot] = Published(
            ContextSnapshot.empty(), name="context_snapshots"
        )
        self.changes: Broadcast[ContextChange] = Broadcast(name="context_changes")
        self._latest: dict[SignalKind, Signal] = {}
        self._lock = asyncio.Lock()
        self._sequence = 0

    @property
    def current(self) -> ContextSnapshot:
        return self.snapshots.value

    def register_source(self, source: SignalSource) -> None:
        self.sources.append(source)

    def latest_signals(self) -> dict[SignalKind, Signal]:
        return dict(self._latest)

    async def submit(self, signal: Signal) -> ContextSnapshot:
        """Record one signal as the latest of its kind and re-fuse."""
        self._remember(signal)
        return await self.fuse(self._fresh_signals())

    async def poll_sources(self) -> ContextSnapshot:
        """Read every registered source concurrently, then fuse.

        A source that raises or returns None is absent for this cycle only.
        """
        results = await asyncio.gather(
            *(self._read_source(s) for s in self.sources)
        )
        for signal in results:
            if signal is not None:
                self._remember(signal)
        return await self.fuse(self._fresh_signals())

    async def _read_source(self, source: SignalSource) -> Signal | None:
        try:
            return await source.read()
        except Exception as e:
            kind = getattr(source, "kind", "unknown")
            logger.warning("signal_source_failed", signal_kind=str(kind), error=str(e))
            metrics.counter("fusion.source_failure")
            return None

    def _remember(self, signal: Signal) -> None:
        previous = self._latest.get(signal.kind)
        if previous is None or signal.timestamp >= previous.timestamp:
            self._latest[signal.kind] = signal

    def _fresh_signals(self) -> list[Signal]:
        cutoff = datetime.now() - self.signal_ttl
        return [s for s in self._latest.values() if s.timestamp >= cutoff]

    async def fuse(self, signals: Iterable[Signal], now: datetime | None = None) -> ContextSnapshot:
        """Fuse exactly the given signals into a new current snapshot. Never raises."""
        by_kind: dict[SignalKind, Signal] = {}
        for signal in signals:
            held = by_kind.get(signal.kind)
            if held is None or signal.timestamp >= held.timestamp:
                by_kind[signal.kind] = signal

        async with self._lock:
            with metrics.timer("fusion.fuse"):
                inputs = self._inputs(by_kind, now or datetime.now())
                parts = await self._build_parts(inputs)
                previous = self.current
                self._sequence += 1
                changed = tuple(
                    name
                    for name in parts
                    if _fingerprint(name, parts[name])
                    != _fingerprint(name, previous.component(name))
                )
                snapshot = ContextSnapshot(
                    **parts,
                    confidence=aggregate_confidence(parts),
                    sequence=self._sequence,
                    changed_components=changed,
                    created_at=inputs.now,
                )
                metrics.gauge("fusion.confidence", snapshot.confidence)
                self.snapshots.publish(snapshot)
                self._report_change(previous, snapshot)
        return snapshot

    def _inputs(self, by_kind: dict[SignalKind, Signal], now: datetime) -> FusionInputs:
        return FusionInputs(
            signals=by_kind,
            now=now,
            patterns=typed_items(by_kind.get(SignalKind.PATTERNS), Pattern),
            records=typed_items(by_kind.get(SignalKind.RECORDS), Record),
            known_places=self.known_places,
        )

    async def _build_parts(self, inputs: FusionInputs) -> dict:
        neutral = {
            "time": lambda: TimeContext.neutral(inputs.now),
            "location": LocationContext.neutral,
            "emotional": EmotionalContext.neutral,
            "system": SystemContext.neutral,
        }
        builders = {
            "time": build_time,
            "location": build_location,
            "emotional": build_emotional,
            "system": build_system,
        }
        parts = {}
        for name, builder in builders.items():
            try:
                parts[name] = builder(inputs)
            except Exception as e:
                logger.warning("context_builder_failed", component=name, error=str(e))
                metrics.counter("fusion.builder_failure")
                parts[name] = neutral[name]()

        try:
            use_semantic = False
            if self.selector is not None:
                use_semantic = await self.selector.should_use_expensive_path(Capability.EMBEDDING)
            parts["activity"] = await build_activity(
                inputs, self.ranker, use_semantic=use_semantic, related_limit=self.related_limit
            )
        except Exception as e:
            logger.warning("context_builder_failed", component="activity", error=str(e))
            metrics.counter("fusion.builder_failure")
            parts["activity"] = ActivityContext.neutral()
        return parts

    def _report_change(self, previous: ContextSnapshot, current: ContextSnapshot) -> None:
        delta = current.confidence - previous.confidence
        if abs(delta) <= self.change_threshold:
            return
        self.changes.send(ContextChange(previous=previous, current=current, delta=delta))
        logger.info(
            "context_changed",
            confidence=round(current.confidence, 3),
            delta=round(delta, 3),
            components=list(current.changed_components),
        )
        emit(
            self.analytics,
            "context_changed",
            confidence=current.confidence,
            components=list(current.changed_components),
        )
