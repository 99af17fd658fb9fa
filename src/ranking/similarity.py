"""Vector similarity helpers and the embedding capability interface."""

from typing import Protocol, Sequence

import numpy as np


class EmbeddingCapability(Protocol):
    """External embedding model. May be absent or fail at any call."""

    async def embed(self, text: str) -> Sequence[float]: ...

    def similarity(self, a: Sequence[float], b: Sequence[float]) -> float: ...


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity in [-1, 1]; 0.0 for empty, zero or mismatched vectors."""
    if a is None or b is None:
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def similarity_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Pairwise cosine similarity for equal-length vectors. Zero vectors score 0."""
    m = np.asarray(vectors, dtype=float)
    if m.ndim != 2 or m.shape[0] == 0:
        return np.zeros((0, 0))
    norms = np.linalg.norm(m, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    unit = m / norms
    return unit @ unit.T
