"""Turn high-confidence patterns into automation rules."""

from datetime import time
from typing import Iterable, Sequence

import structlog

from patterns.models import Pattern
from shared_types import ActionType, PatternType, PlaceType, TimeOfDay, TriggerType

from .models import AutomationRule, RuleAction, RuleCondition, RuleSource, TimeRange

logger = structlog.get_logger()

TIME_RANGES = {
    TimeOfDay.MORNING: TimeRange(time(5), time(12)),
    TimeOfDay.AFTERNOON: TimeRange(time(12), time(17)),
    TimeOfDay.EVENING: TimeRange(time(17), time(22)),
    TimeOfDay.NIGHT: TimeRange(time(22), time(5)),
}

ACTION_TEMPLATES = {
    PatternType.ROUTINE: (ActionType.NOTIFICATION, "Time for your routine: {pattern}"),
    PatternType.PREFERENCE: (ActionType.SPOKEN_OUTPUT, "Set up the way you like: {pattern}"),
    PatternType.HABIT: (ActionType.NOTIFICATION, "Habit reminder: {pattern}"),
    PatternType.SOCIAL: (ActionType.NOTIFICATION, "Time to reach out: {pattern}"),
}


class RuleGenerator:
    """Converts each pattern above the threshold into one rule."""

    def __init__(self, config: dict | None = None):
        cfg = config or {}
        self.threshold = cfg.get("rule_generation_threshold", 0.7)

    def condition_for(self, pattern: Pattern) -> RuleCondition | None:
        time_range = TIME_RANGES.get(pattern.time_of_day) if pattern.time_of_day else None
        if pattern.location:
            try:
                place = PlaceType(pattern.location.lower())
                place_id = None
            except ValueError:
                place, place_id = PlaceType.FREQUENT, pattern.location
            if place == PlaceType.ANY:
                place_id = None
            return RuleCondition(
                place_type=place,
                trigger=TriggerType.ENTER,
                time_range=time_range,
                place_id=place_id,
            )
        if time_range is not None:
            return RuleCondition(
                place_type=PlaceType.ANY, trigger=TriggerType.SCHEDULED, time_range=time_range
            )
        return None

    def action_for(self, pattern: Pattern) -> RuleAction:
        action_type, template = ACTION_TEMPLATES[pattern.type]
        return RuleAction(
            type=action_type,
            parameters={"message": template, "context": {"pattern": pattern.description}},
        )

    def generate(
        self, patterns: Iterable[Pattern], existing: Sequence[AutomationRule] = ()
    ) -> list[AutomationRule]:
        """Rules for patterns strictly above the threshold.

        Patterns whose rule would duplicate an existing manual rule (same
        condition and action) are skipped.
        """
        taken = {r.signature() for r in existing if r.source != RuleSource.GENERATED}
        rules = []
        for pattern in patterns:
            if pattern.confidence <= self.threshold:
                continue
            condition = self.condition_for(pattern)
            if condition is None:
                logger.debug("pattern_without_condition", pattern_id=pattern.id)
                continue
            rule = AutomationRule(
                name=f"{pattern.type.value}: {pattern.description[:40]}",
                condition=condition,
                action=self.action_for(pattern),
                priority=round(pattern.confidence * 10),
                confidence=pattern.confidence,
                source=RuleSource.GENERATED,
                pattern_id=pattern.id,
            )
            signature = rule.signature()
            if signature in taken:
                continue
            taken.add(signature)
            rules.append(rule)

        logger.info("rules_generated", rules=len(rules))
        return rules
