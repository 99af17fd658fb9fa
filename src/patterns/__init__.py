"""Behavioural pattern detection."""

from .engine import PatternDetector, PatternEngine, merge_patterns
from .heavy import EmbeddingClusterDetector
from .light import DEFAULT_RULES, PatternRule, RuleMatchDetector
from .models import Pattern

__all__ = [
    "DEFAULT_RULES",
    "EmbeddingClusterDetector",
    "Pattern",
    "PatternDetector",
    "PatternEngine",
    "PatternRule",
    "RuleMatchDetector",
    "merge_patterns",
]
