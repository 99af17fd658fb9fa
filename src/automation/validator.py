"""Rule validation. Invalid rules are skipped, never executed."""

from collections.abc import Mapping

from shared_types import ActionType, TriggerType

from .models import AutomationRule

REQUIRED_PARAMETERS = {
    ActionType.DEVICE_CONTROL: ("device_id", "command"),
    ActionType.NOTIFICATION: ("message",),
    ActionType.SCENE: ("scene",),
    ActionType.SPOKEN_OUTPUT: ("message",),
    ActionType.SYSTEM_SETTING: ("setting", "value"),
}


class InvalidRuleError(ValueError):
    """Raised when a rule fails validation."""

    def __init__(self, rule_id: str, reasons: list[str]):
        self.rule_id = rule_id
        self.reasons = reasons
        super().__init__(f"rule {rule_id} is invalid: {'; '.join(reasons)}")


def _is_number(value, types) -> bool:
    return isinstance(value, types) and not isinstance(value, bool)


class RuleValidator:
    def __init__(self, config: dict | None = None):
        cfg = config or {}
        self.max_priority = cfg.get("max_priority", 100)

    def validate(self, rule: AutomationRule) -> list[str]:
        """Return the reasons a rule is invalid (empty when valid)."""
        reasons = []
        if not isinstance(rule.name, str):
            reasons.append(f"name must be text, got {type(rule.name).__name__}")
        elif not rule.name.strip():
            reasons.append("name is empty")
        if not _is_number(rule.priority, int):
            reasons.append(f"priority must be an integer, got {rule.priority!r}")
        elif not 0 <= rule.priority <= self.max_priority:
            reasons.append(f"priority {rule.priority} outside 0-{self.max_priority}")
        if not _is_number(rule.confidence, (int, float)):
            reasons.append(f"confidence must be a number, got {rule.confidence!r}")
        elif not 0.0 <= rule.confidence <= 1.0:
            reasons.append(f"confidence {rule.confidence} outside [0, 1]")

        time_range = rule.condition.time_range
        if time_range is not None and time_range.start == time_range.end:
            reasons.append("time range is empty")
        if rule.condition.trigger == TriggerType.SCHEDULED and time_range is None:
            reasons.append("scheduled rule needs a time range")

        params = rule.action.parameters
        if not isinstance(params, Mapping):
            reasons.append("action parameters must be a mapping")
            return reasons
        for name in REQUIRED_PARAMETERS.get(rule.action.type, ()):
            if params.get(name) in (None, ""):
                reasons.append(f"{rule.action.type.value} action missing '{name}'")
        if "context" in params and not isinstance(params["context"], dict):
            reasons.append("action 'context' must be a mapping")
        return reasons

    def check(self, rule: AutomationRule) -> AutomationRule:
        reasons = self.validate(rule)
        if reasons:
            raise InvalidRuleError(rule.id, reasons)
        return rule
