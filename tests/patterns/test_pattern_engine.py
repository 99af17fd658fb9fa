"""Tests for mode-aware pattern detection, merging and refresh."""

from datetime import timedelta

import pytest

from patterns import Pattern, PatternEngine, merge_patterns
from ranking import QueryContext
from records import PayloadStore
from resources import ResourceModeSelector, StaticTelemetry
from shared_types import PatternType, ProcessingMode


class StubDetector:
    def __init__(self, name, patterns=(), fail=False):
        self.name = name
        self.patterns = list(patterns)
        self.fail = fail
        self.calls = 0

    async def detect(self, records, context=None):
        self.calls += 1
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return list(self.patterns)


def pat(ptype, confidence, description="p", **kwargs):
    return Pattern(type=ptype, description=description, confidence=confidence, **kwargs)


def make_engine(budget, mode, heavy=None, light=None, **kwargs):
    selector = ResourceModeSelector(StaticTelemetry(budget), initial_mode=mode)
    return PatternEngine(
        heavy or StubDetector("heavy"), light or StubDetector("light"), selector, **kwargs
    )


class TestMergePatterns:
    def test_one_per_type_max_confidence(self):
        merged = merge_patterns(
            [
                pat(PatternType.ROUTINE, 0.7, "a"),
                pat(PatternType.ROUTINE, 0.9, "b"),
                pat(PatternType.SOCIAL, 0.8),
            ]
        )
        assert [(p.type, p.confidence) for p in merged] == [
            (PatternType.ROUTINE, 0.9),
            (PatternType.SOCIAL, 0.8),
        ]

    def test_floor_applied(self):
        merged = merge_patterns([pat(PatternType.HABIT, 0.59)], floor=0.6)
        assert merged == []

    def test_merge_never_below_floor_and_unique_types(self):
        inputs = [pat(t, c) for t in PatternType for c in (0.2, 0.61, 0.75, 0.99)]
        merged = merge_patterns(inputs, floor=0.6)
        assert len({p.type for p in merged}) == len(merged) == len(PatternType)
        assert all(p.confidence == 0.99 for p in merged)


class TestStrategySelection:
    @pytest.mark.asyncio
    async def test_lightweight_runs_light_only(self, plenty_budget):
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT)
        await engine.detect([])
        assert engine.heavy.calls == 0
        assert engine.light.calls == 1

    @pytest.mark.asyncio
    async def test_full_runs_heavy_only(self, plenty_budget):
        engine = make_engine(plenty_budget, ProcessingMode.FULL)
        await engine.detect([])
        assert engine.heavy.calls == 1
        assert engine.light.calls == 0

    @pytest.mark.asyncio
    async def test_hybrid_runs_both_when_floor_holds(self, hybrid_budget):
        engine = make_engine(hybrid_budget, ProcessingMode.HYBRID)
        await engine.detect([])
        assert engine.heavy.calls == 1
        assert engine.light.calls == 1

    @pytest.mark.asyncio
    async def test_hybrid_drops_heavy_below_floor(self, exhausted_budget):
        engine = make_engine(exhausted_budget, ProcessingMode.HYBRID)
        detectors = await engine.detectors_for_mode(ProcessingMode.HYBRID)
        assert [d.name for d in detectors] == ["light"]


class TestDetect:
    @pytest.mark.asyncio
    async def test_merges_detector_output(self, hybrid_budget):
        heavy = StubDetector("heavy", [pat(PatternType.ROUTINE, 0.8, "heavy routine")])
        light = StubDetector(
            "light",
            [pat(PatternType.ROUTINE, 0.7, "light routine"), pat(PatternType.HABIT, 0.5)],
        )
        engine = make_engine(hybrid_budget, ProcessingMode.HYBRID, heavy, light)
        found = await engine.detect([])
        assert [p.description for p in found] == ["heavy routine"]

    @pytest.mark.asyncio
    async def test_failing_detector_isolated(self, hybrid_budget):
        heavy = StubDetector("heavy", fail=True)
        light = StubDetector("light", [pat(PatternType.SOCIAL, 0.75)])
        engine = make_engine(hybrid_budget, ProcessingMode.HYBRID, heavy, light)
        found = await engine.detect([])
        assert [p.type for p in found] == [PatternType.SOCIAL]


class TestRefresh:
    @pytest.mark.asyncio
    async def test_redetected_type_keeps_id(self, plenty_budget, now):
        light = StubDetector("light", [pat(PatternType.HABIT, 0.7, "first")])
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, light=light)
        ctx = QueryContext(now=now)
        (first,) = await engine.refresh([], ctx)

        light.patterns = [pat(PatternType.HABIT, 0.8, "second")]
        (second,) = await engine.refresh([], ctx)
        assert second.id == first.id
        assert second.description == "second"
        assert second.confidence == 0.8

    @pytest.mark.asyncio
    async def test_undetected_patterns_decay_out(self, plenty_budget, now):
        light = StubDetector("light", [pat(PatternType.HABIT, 0.8)])
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, light=light)
        ctx = QueryContext(now=now)
        await engine.refresh([], ctx)
        light.patterns = []

        confidences = []
        for _ in range(3):
            active = await engine.refresh([], ctx)
            confidences.append(active[0].confidence if active else None)
        assert confidences[0] == pytest.approx(0.72)
        assert confidences[1] == pytest.approx(0.648)
        assert confidences[2] is None

    @pytest.mark.asyncio
    async def test_stale_evidence_expires(self, plenty_budget, make_record, now):
        old = make_record("gym again", days_ago=45)
        light = StubDetector(
            "light", [pat(PatternType.HABIT, 0.9, supporting_record_ids=(old.id,))]
        )
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, light=light)
        ctx = QueryContext(now=now)
        await engine.refresh([old], ctx)
        light.patterns = []
        assert await engine.refresh([old], ctx) == ()

    @pytest.mark.asyncio
    async def test_publishes_and_persists(self, plenty_budget, tmp_path, now):
        store = PayloadStore(tmp_path / "engine.db")
        light = StubDetector("light", [pat(PatternType.SOCIAL, 0.9)])
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, light=light, store=store)
        sub = engine.active.subscribe()
        active = await engine.refresh([], QueryContext(now=now))
        assert sub.get_nowait() == active

        restored = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, store=store).load()
        assert [p.id for p in restored] == [p.id for p in active]

    @pytest.mark.asyncio
    async def test_load_skips_corrupt_payloads(self, plenty_budget, tmp_path):
        store = PayloadStore(tmp_path / "engine.db")
        store.put("pattern", "bad", {"type": "routine"})
        good = pat(PatternType.ROUTINE, 0.9)
        store.put("pattern", good.id, good.to_dict())
        engine = make_engine(plenty_budget, ProcessingMode.LIGHTWEIGHT, store=store)
        assert [p.id for p in engine.load()] == [good.id]


class TestPatternModel:
    def test_dict_round_trip(self, now):
        p = pat(PatternType.ROUTINE, 0.8, "morning run", location="park", created_at=now)
        assert Pattern.from_dict(p.to_dict()) == p

    def test_with_confidence_clips(self):
        p = pat(PatternType.ROUTINE, 0.8)
        assert p.with_confidence(1.7).confidence == 1.0
        assert p.with_confidence(-1).confidence == 0.0

    def test_signature_ignores_id(self):
        a = pat(PatternType.ROUTINE, 0.8, "Run")
        b = pat(PatternType.ROUTINE, 0.6, "run")
        assert a.signature() == b.signature()
        assert a.id != b.id
        assert (a.created_at - b.created_at) < timedelta(seconds=5)
