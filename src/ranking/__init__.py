"""Relevance ranking of historical records."""

from .cache import LRUCache
from .ranker import QueryContext, RelevanceRanker, ScoredRecord
from .similarity import EmbeddingCapability, cosine_similarity, similarity_matrix

__all__ = [
    "EmbeddingCapability",
    "LRUCache",
    "QueryContext",
    "RelevanceRanker",
    "ScoredRecord",
    "cosine_similarity",
    "similarity_matrix",
]
