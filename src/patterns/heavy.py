"""Embedding-similarity clustering detector (the expensive strategy)."""

from collections import Counter
from typing import Sequence

import numpy as np
import structlog

from ranking.similarity import EmbeddingCapability, similarity_matrix
from records.models import Record
from shared_types import PatternType, RecordType

from .models import Pattern

logger = structlog.get_logger()

_TYPE_BY_RECORD = {
    RecordType.ROUTINE: PatternType.ROUTINE,
    RecordType.PREFERENCE: PatternType.PREFERENCE,
    RecordType.SOCIAL: PatternType.SOCIAL,
}


def dominant(values: Sequence, min_share: float = 0.5):
    """Most common non-empty value if it covers at least min_share of values."""
    present = [v for v in values if v]
    if not present:
        return None
    value, count = Counter(present).most_common(1)[0]
    return value if count / len(values) >= min_share else None


def pattern_type_for(records: Sequence[Record]) -> PatternType:
    """Explicit type tags win, then the records' own types, else HABIT."""
    known = {p.value for p in PatternType}
    tag_votes = [t for r in records for t in r.tags if t in known]
    if tag_votes:
        return PatternType(Counter(tag_votes).most_common(1)[0][0])
    mapped = [_TYPE_BY_RECORD.get(r.type, PatternType.HABIT) for r in records]
    return Counter(mapped).most_common(1)[0][0]


class EmbeddingClusterDetector:
    """Groups records whose pairwise similarity >= threshold into clusters.

    Clusters are connected components of the similarity graph, grown from each
    unvisited seed by density expansion. Components smaller than
    min_cluster_size are ignored.
    """

    name = "heavy"

    def __init__(self, embedder: EmbeddingCapability | None = None, config: dict | None = None):
        self.embedder = embedder
        cfg = config or {}
        self.similarity_threshold = cfg.get("similarity_threshold", 0.8)
        self.min_cluster_size = cfg.get("min_cluster_size", 3)
        self.max_records = cfg.get("max_records", 500)

    async def detect(self, records: Sequence[Record], context=None) -> list[Pattern]:
        vectored = await self._vectors(list(records)[: self.max_records])
        if len(vectored) < self.min_cluster_size:
            return []

        ids = [r for r, _ in vectored]
        sims = similarity_matrix([v for _, v in vectored])
        clusters = self._components(sims)

        patterns = []
        for members in clusters:
            if len(members) < self.min_cluster_size:
                continue
            cluster = [ids[i] for i in members]
            patterns.append(self._to_pattern(cluster, sims, members))

        logger.debug(
            "heavy_detector_complete",
            records=len(vectored),
            clusters=len(clusters),
            patterns=len(patterns),
        )
        return patterns

    def _components(self, sims: np.ndarray) -> list[list[int]]:
        n = sims.shape[0]
        adjacency = sims >= self.similarity_threshold
        visited = [False] * n
        components = []
        for seed in range(n):
            if visited[seed]:
                continue
            visited[seed] = True
            stack = [seed]
            members = []
            while stack:
                node = stack.pop()
                members.append(node)
                for neighbour in np.flatnonzero(adjacency[node]):
                    if not visited[neighbour]:
                        visited[neighbour] = True
                        stack.append(int(neighbour))
            components.append(sorted(members))
        return components

    def _to_pattern(self, records: list[Record], sims: np.ndarray, members: list[int]) -> Pattern:
        sub = sims[np.ix_(members, members)]
        upper = sub[np.triu_indices(len(members), k=1)]
        mean_sim = float(upper.mean()) if upper.size else 0.0
        size_factor = min(1.0, 0.5 + len(members) / 10)
        confidence = max(0.0, min(1.0, mean_sim * size_factor))

        ptype = pattern_type_for(records)
        time_of_day = dominant([r.time_of_day for r in records])
        location = dominant([r.context_value("location") for r in records])
        exemplar = max(records, key=lambda r: (r.importance, r.timestamp))
        description = f"{exemplar.content[:60]} ({len(records)} similar records)"

        return Pattern(
            type=ptype,
            description=description,
            confidence=confidence,
            supporting_record_ids=tuple(r.id for r in records),
            time_of_day=time_of_day,
            location=location,
            detector=self.name,
        )

    async def _vectors(self, records: list[Record]) -> list[tuple[Record, tuple[float, ...]]]:
        out = []
        for record in records:
            vec = record.embedding
            if vec is None and self.embedder is not None:
                vec = tuple(await self.embedder.embed(record.content))
            if vec:
                out.append((record, tuple(vec)))
        if not out:
            return out
        # Mixed embedding models cannot be compared; keep the majority dimension
        dim = Counter(len(v) for _, v in out).most_common(1)[0][0]
        return [(r, v) for r, v in out if len(v) == dim]
