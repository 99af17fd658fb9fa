"""Relevance ranking of records: semantic + temporal + contextual + importance."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence

import structlog

from observability import metrics
from records.models import CONTEXT_DIMENSIONS, Record
from shared_types import TimeOfDay

from .cache import LRUCache
from .similarity import EmbeddingCapability, cosine_similarity

logger = structlog.get_logger()

DEFAULT_WEIGHTS = {
    "semantic": 0.4,
    "temporal": 0.2,
    "contextual": 0.2,
    "importance": 0.2,
}
NEUTRAL_SEMANTIC = 0.5
NEUTRAL_CONTEXTUAL = 0.5
RECENCY_SHARE = 0.7
TIME_MATCH_BONUS = 0.3


@dataclass(frozen=True)
class QueryContext:
    """The slice of situational context the ranker compares records against."""

    location: str | None = None
    emotion: str | None = None
    activity: str | None = None
    time_of_day: TimeOfDay | None = None
    routine_times: tuple[TimeOfDay, ...] = ()
    now: datetime | None = None

    def dimension(self, name: str) -> str | None:
        return getattr(self, name)

    def cache_key(self) -> tuple:
        return (
            self.location,
            self.emotion,
            self.activity,
            self.time_of_day,
            self.routine_times,
            self.now.isoformat() if self.now else None,
        )


@dataclass
class ScoredRecord:
    record: Record
    semantic: float = 0.0
    temporal: float = 0.0
    contextual: float = 0.0
    importance: float = 0.0
    score: float = 0.0
    components: dict = field(default_factory=dict)


class RelevanceRanker:
    """Scores and ranks records for a query.

    The embedding capability is optional. When it is missing, raises, or the
    caller passes use_semantic=False, the semantic term falls back to a neutral
    constant so ranking still works on the heuristic terms.
    """

    def __init__(
        self,
        embedder: EmbeddingCapability | None = None,
        config: dict | None = None,
    ):
        self.embedder = embedder
        cfg = config or {}
        self.weights = {**DEFAULT_WEIGHTS, **cfg.get("weights", {})}
        self.min_score = cfg.get("min_score", 0.7)
        self.max_age = timedelta(days=cfg.get("max_age_days", 30))
        self.default_limit = cfg.get("default_limit", 5)
        self.query_cache: LRUCache[list[Record]] = LRUCache(
            max_size=cfg.get("cache_size", 100),
            ttl_seconds=cfg.get("cache_ttl_seconds"),
            name="ranking_queries",
        )
        self.embedding_cache: LRUCache[tuple[float, ...]] = LRUCache(
            max_size=cfg.get("embedding_cache_size", 1000),
            name="ranking_embeddings",
        )

    async def rank(
        self,
        query: str,
        records: Iterable[Record],
        context: QueryContext | None = None,
        limit: int | None = None,
        use_semantic: bool = True,
        min_score: float | None = None,
    ) -> list[Record]:
        """Return the top records for a query, best first.

        Records scoring below min_score are excluded before ordering. Ties are
        broken by recency (newer first).
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.min_score if min_score is None else min_score
        records = list(records)
        context = context or QueryContext()
        if limit <= 0 or not records:
            return []

        key = self._cache_key(query, records, context, limit, use_semantic, threshold)
        cached = self.query_cache.get(key)
        if cached is not None:
            metrics.counter("ranking.cache_hit")
            return list(cached)

        scored = await self.score_all(query, records, context, use_semantic=use_semantic)
        kept = [s for s in scored if s.score >= threshold]
        kept.sort(key=lambda s: (s.score, s.record.timestamp), reverse=True)
        result = [s.record for s in kept[:limit]]

        self.query_cache.put(key, result)
        logger.debug(
            "ranking.complete",
            query=query[:60],
            candidates=len(records),
            kept=len(kept),
            returned=len(result),
        )
        return list(result)

    async def score_all(
        self,
        query: str,
        records: Sequence[Record],
        context: QueryContext | None = None,
        use_semantic: bool = True,
    ) -> list[ScoredRecord]:
        context = context or QueryContext()
        query_vec = await self._embed(query) if use_semantic else None
        now = context.now or datetime.now()
        results = []
        for record in records:
            if query_vec is not None:
                record_vec = record.embedding or await self._embed(record.content)
            else:
                record_vec = None
            results.append(self.score(record, query_vec, record_vec, context, now))
        return results

    def score(
        self,
        record: Record,
        query_vec: Sequence[float] | None,
        record_vec: Sequence[float] | None,
        context: QueryContext,
        now: datetime,
    ) -> ScoredRecord:
        if query_vec is None or record_vec is None:
            semantic = NEUTRAL_SEMANTIC
        else:
            semantic = min(1.0, max(0.0, self.similarity(query_vec, record_vec)))
        temporal = self.temporal_score(record, context, now)
        contextual = self.contextual_score(record, context)
        importance = record.importance / 5.0

        w = self.weights
        total = (
            w["semantic"] * semantic
            + w["temporal"] * temporal
            + w["contextual"] * contextual
            + w["importance"] * importance
        )
        return ScoredRecord(
            record=record,
            semantic=semantic,
            temporal=temporal,
            contextual=contextual,
            importance=importance,
            score=min(1.0, max(0.0, total)),
        )

    def temporal_score(self, record: Record, context: QueryContext, now: datetime) -> float:
        age = max(0.0, (now - record.timestamp).total_seconds())
        recency = max(0.0, 1.0 - age / self.max_age.total_seconds())
        wanted = set(context.routine_times)
        if context.time_of_day:
            wanted.add(context.time_of_day)
        bonus = TIME_MATCH_BONUS if record.time_of_day in wanted else 0.0
        return min(1.0, RECENCY_SHARE * recency + bonus)

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        """The capability's similarity, or local cosine when it has none or it fails."""
        compare = getattr(self.embedder, "similarity", None)
        if compare is None:
            return cosine_similarity(a, b)
        try:
            return float(compare(a, b))
        except Exception as e:
            logger.warning("ranking.similarity_failed", error=str(e))
            metrics.counter("ranking.similarity_failure")
            return cosine_similarity(a, b)

    @staticmethod
    def contextual_score(record: Record, context: QueryContext) -> float:
        compared = 0
        matched = 0
        for dim in CONTEXT_DIMENSIONS:
            ours = context.dimension(dim)
            theirs = record.context_value(dim)
            if ours is None or theirs is None:
                continue
            compared += 1
            if str(ours).lower() == str(theirs).lower():
                matched += 1
        return matched / compared if compared else NEUTRAL_CONTEXTUAL

    async def _embed(self, text: str) -> tuple[float, ...] | None:
        if self.embedder is None:
            return None
        cached = self.embedding_cache.get(text)
        if cached is not None:
            return cached
        try:
            vec = tuple(float(x) for x in await self.embedder.embed(text))
        except Exception as e:
            logger.warning("ranking.embed_failed", error=str(e), text=text[:40])
            metrics.counter("ranking.embed_failure")
            return None
        self.embedding_cache.put(text, vec)
        return vec

    @staticmethod
    def _cache_key(
        query: str,
        records: Sequence[Record],
        context: QueryContext,
        limit: int,
        use_semantic: bool,
        threshold: float,
    ) -> str:
        h = hashlib.sha256()
        h.update(query.encode())
        h.update(repr(context.cache_key()).encode())
        h.update(f"|{limit}|{use_semantic}|{threshold}".encode())
        for r in sorted(records, key=lambda r: r.id):
            h.update(f"{r.id}:{r.timestamp.isoformat()}:{r.importance}".encode())
        return h.hexdigest()

    def invalidate(self) -> None:
        """Drop cached rankings and shrink the embedding cache."""
        self.query_cache.clear()
        self.embedding_cache.trim()
