"""Deterministic rule/regex detector (the cheap strategy)."""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

import structlog

from ranking.ranker import QueryContext
from records.models import Record
from shared_types import PatternType

from .heavy import dominant
from .models import Pattern

logger = structlog.get_logger()


@dataclass(frozen=True)
class PatternRule:
    type: PatternType
    regex: re.Pattern
    description: str
    base_confidence: float = 0.65


_PREFERENCE_RE = re.compile(
    r"\b(i (really )?(like|love|prefer|enjoy)|favou?rite|always (order|take|have))\b", re.I
)
_ROUTINE_RE = re.compile(
    r"\b(every (morning|evening|night|day|week(day|end)?)|usually|each (morning|evening))\b",
    re.I,
)
_HABIT_RE = re.compile(r"\b(again|daily|habit|as always|same as yesterday)\b", re.I)
_SOCIAL_RE = re.compile(
    r"\b(with (my )?(friends?|family|mom|dad|partner|wife|husband|team)"
    r"|call(ed)? (mom|dad)|dinner with|met (up )?with)\b",
    re.I,
)

DEFAULT_RULES = (
    PatternRule(PatternType.PREFERENCE, _PREFERENCE_RE, "Stated preference"),
    PatternRule(PatternType.ROUTINE, _ROUTINE_RE, "Recurring routine"),
    PatternRule(PatternType.HABIT, _HABIT_RE, "Repeated habit", base_confidence=0.6),
    PatternRule(PatternType.SOCIAL, _SOCIAL_RE, "Social interaction"),
)


class RuleMatchDetector:
    """Matches a fixed rule table against recent records."""

    name = "light"

    def __init__(self, rules: Sequence[PatternRule] | None = None, config: dict | None = None):
        self.rules = tuple(rules) if rules is not None else DEFAULT_RULES
        cfg = config or {}
        self.lookback = timedelta(days=cfg.get("lookback_days", 7))
        self.per_match_boost = cfg.get("per_match_boost", 0.1)
        self.max_confidence = cfg.get("max_confidence", 0.95)

    async def detect(
        self, records: Sequence[Record], context: QueryContext | None = None
    ) -> list[Pattern]:
        now = (context.now if context else None) or datetime.now()
        recent = [r for r in records if now - r.timestamp <= self.lookback]

        patterns = []
        for rule in self.rules:
            matched = [r for r in recent if rule.regex.search(r.content)]
            if not matched:
                continue
            patterns.append(self._to_pattern(rule, matched, context))

        logger.debug("light_detector_complete", records=len(recent), patterns=len(patterns))
        return patterns

    def _to_pattern(
        self, rule: PatternRule, matched: list[Record], context: QueryContext | None
    ) -> Pattern:
        confidence = rule.base_confidence + self.per_match_boost * (len(matched) - 1)
        time_of_day = dominant([r.time_of_day for r in matched])
        if context and context.time_of_day and time_of_day == context.time_of_day:
            confidence += 0.05
        confidence = min(self.max_confidence, confidence)

        newest = max(matched, key=lambda r: r.timestamp)
        snippet = rule.regex.search(newest.content).group(0)
        return Pattern(
            type=rule.type,
            description=f"{rule.description}: '{snippet}' in {newest.content[:50]}",
            confidence=confidence,
            supporting_record_ids=tuple(r.id for r in matched),
            time_of_day=time_of_day,
            location=dominant([r.context_value("location") for r in matched]),
            detector=self.name,
        )
