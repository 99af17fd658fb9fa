"""Tests for the light (rule) and heavy (embedding cluster) detectors."""

import pytest

from patterns import EmbeddingClusterDetector, RuleMatchDetector
from patterns.heavy import dominant, pattern_type_for
from ranking import QueryContext
from shared_types import PatternType, RecordType, TimeOfDay


class TestDominant:
    def test_majority_value(self):
        assert dominant(["a", "a", "b"]) == "a"

    def test_no_majority(self):
        assert dominant(["a", "b", "c"]) is None

    def test_missing_values_count_against_share(self):
        assert dominant(["a", None, None]) is None
        assert dominant([None, None]) is None


class TestPatternTypeFor:
    def test_tags_win(self, make_record):
        records = [make_record("x", record_type=RecordType.ROUTINE, tags=["social"])]
        assert pattern_type_for(records) == PatternType.SOCIAL

    def test_record_types_map(self, make_record):
        records = [make_record("x", record_type=RecordType.PREFERENCE) for _ in range(2)]
        assert pattern_type_for(records) == PatternType.PREFERENCE

    def test_fallback_is_habit(self, make_record):
        assert pattern_type_for([make_record("x")]) == PatternType.HABIT


class TestRuleMatchDetector:
    @pytest.mark.asyncio
    async def test_preference_with_repeat_boost(self, make_record, now):
        records = [
            make_record("I always order a flat white", days_ago=d, hour=8, location="cafe")
            for d in (0, 1, 2)
        ]
        ctx = QueryContext(time_of_day=TimeOfDay.MORNING, now=now)
        found = await RuleMatchDetector().detect(records, ctx)
        assert len(found) == 1
        pattern = found[0]
        assert pattern.type == PatternType.PREFERENCE
        assert pattern.confidence == pytest.approx(0.9)
        assert pattern.time_of_day == TimeOfDay.MORNING
        assert pattern.location == "cafe"
        assert pattern.detector == "light"
        assert set(pattern.supporting_record_ids) == {r.id for r in records}

    @pytest.mark.asyncio
    async def test_confidence_capped(self, make_record, now):
        records = [make_record("gym again", days_ago=d * 0.5) for d in range(10)]
        found = await RuleMatchDetector().detect(records, QueryContext(now=now))
        assert found[0].type == PatternType.HABIT
        assert found[0].confidence == 0.95

    @pytest.mark.asyncio
    async def test_old_records_ignored(self, make_record, now):
        records = [make_record("Dinner with my family", days_ago=10)]
        assert await RuleMatchDetector().detect(records, QueryContext(now=now)) == []

    @pytest.mark.asyncio
    async def test_multiple_rule_types(self, make_record, now):
        records = [
            make_record("Called mom after work"),
            make_record("Every morning I stretch for ten minutes"),
            make_record("Nothing remarkable today"),
        ]
        found = await RuleMatchDetector().detect(records, QueryContext(now=now))
        assert {p.type for p in found} == {PatternType.SOCIAL, PatternType.ROUTINE}

    @pytest.mark.asyncio
    async def test_lookback_configurable(self, make_record, now):
        records = [make_record("I love jazz", days_ago=10)]
        detector = RuleMatchDetector(config={"lookback_days": 14})
        assert len(await detector.detect(records, QueryContext(now=now))) == 1


class TestEmbeddingClusterDetector:
    @pytest.mark.asyncio
    async def test_cluster_becomes_pattern(self, make_record):
        cluster = [
            make_record(
                f"Morning run {i}",
                days_ago=i,
                hour=7,
                record_type=RecordType.ROUTINE,
                embedding=[1.0, 0.0, 0.0],
                location="park",
            )
            for i in range(3)
        ]
        noise = [
            make_record("Bought stamps", embedding=[0.0, 1.0, 0.0]),
            make_record("Fixed the sink", embedding=[0.0, 0.0, 1.0]),
        ]
        found = await EmbeddingClusterDetector().detect(cluster + noise)
        assert len(found) == 1
        pattern = found[0]
        assert pattern.type == PatternType.ROUTINE
        assert pattern.confidence == pytest.approx(0.8)
        assert pattern.time_of_day == TimeOfDay.MORNING
        assert pattern.location == "park"
        assert pattern.detector == "heavy"
        assert len(pattern.supporting_record_ids) == 3

    @pytest.mark.asyncio
    async def test_small_clusters_ignored(self, make_record):
        records = [make_record("a", embedding=[1.0, 0.0]), make_record("b", embedding=[1.0, 0.0])]
        assert await EmbeddingClusterDetector().detect(records) == []

    @pytest.mark.asyncio
    async def test_uses_embedder_for_missing_vectors(self, make_record, fake_embedder):
        records = [make_record("coffee breakfast") for _ in range(3)]
        detector = EmbeddingClusterDetector(fake_embedder)
        found = await detector.detect(records)
        assert len(found) == 1
        assert fake_embedder.calls == 3

    @pytest.mark.asyncio
    async def test_records_without_vectors_skipped(self, make_record):
        records = [make_record("no vector") for _ in range(5)]
        assert await EmbeddingClusterDetector().detect(records) == []

    @pytest.mark.asyncio
    async def test_mixed_dimensions_use_majority(self, make_record):
        records = [make_record(f"r{i}", embedding=[1.0, 0.0]) for i in range(3)]
        records.append(make_record("other model", embedding=[1.0, 0.0, 0.0]))
        found = await EmbeddingClusterDetector().detect(records)
        assert len(found) == 1
        assert len(found[0].supporting_record_ids) == 3
