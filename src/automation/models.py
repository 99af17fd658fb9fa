"""Automation rules, trigger events and execution records."""

import hashlib
import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from enum import StrEnum
from typing import Any

from shared_types import ActionType, ExecutionOutcome, PlaceType, TriggerType


class CyclePhase(StrEnum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    EXECUTING = "executing"
    SKIPPED = "skipped"


class RuleSource(StrEnum):
    MANUAL = "manual"
    GENERATED = "generated"


@dataclass(frozen=True)
class TimeRange:
    """Half-open [start, end) wall-clock range. start > end wraps past midnight."""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        moment = moment.replace(tzinfo=None)
        if self.start <= self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    def to_dict(self) -> dict:
        return {"start": self.start.strftime("%H:%M"), "end": self.end.strftime("%H:%M")}

    @classmethod
    def from_dict(cls, data: dict) -> "TimeRange":
        return cls(start=time.fromisoformat(data["start"]), end=time.fromisoformat(data["end"]))

    @classmethod
    def parse(cls, text: str) -> "TimeRange":
        """Parse "HH:MM-HH:MM"."""
        start, _, end = text.partition("-")
        if not end:
            raise ValueError(f"expected HH:MM-HH:MM, got {text!r}")
        return cls(start=time.fromisoformat(start.strip()), end=time.fromisoformat(end.strip()))


@dataclass(frozen=True)
class RuleCondition:
    place_type: PlaceType
    trigger: TriggerType
    time_range: TimeRange | None = None
    place_id: str | None = None  # narrows FREQUENT places to one place

    def __post_init__(self):
        object.__setattr__(self, "place_type", PlaceType(self.place_type))
        object.__setattr__(self, "trigger", TriggerType(self.trigger))

    def matches_event(self, event: "TriggerEvent") -> bool:
        if self.trigger != event.trigger:
            return False
        if self.place_type != PlaceType.ANY and self.place_type != event.place_type:
            return False
        return self.place_id is None or self.place_id == event.place_id

    def holds_at(self, moment: datetime) -> bool:
        return self.time_range is None or self.time_range.contains(moment.time())

    def holds_in(self, snapshot) -> bool:
        """Evaluate against a fused context snapshot.

        The time range is checked at the snapshot's time. A DWELL rule also needs the
        snapshot's place type to agree when the snapshot knows where we are; ENTER and
        EXIT are transitions, so the snapshot may still hold the previous place.
        """
        if not self.holds_at(snapshot.time.now):
            return False
        place = snapshot.place_type
        if self.trigger != TriggerType.DWELL or place is None or self.place_type == PlaceType.ANY:
            return True
        return place == self.place_type

    def to_dict(self) -> dict:
        return {
            "place_type": self.place_type.value,
            "trigger": self.trigger.value,
            "time_range": self.time_range.to_dict() if self.time_range else None,
            "place_id": self.place_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RuleCondition":
        return cls(
            place_type=PlaceType(data["place_type"]),
            trigger=TriggerType(data["trigger"]),
            time_range=TimeRange.from_dict(data["time_range"]) if data.get("time_range") else None,
            place_id=data.get("place_id"),
        )


# Which parameter identifies the target and which carries the value, per action type.
# Action types missing here never conflict.
_TARGETS = {
    ActionType.DEVICE_CONTROL: ("device", "device_id", "command"),
    ActionType.SYSTEM_SETTING: ("setting", "setting", "value"),
    ActionType.SCENE: ("scene", None, "scene"),
}


@dataclass(frozen=True)
class RuleAction:
    type: ActionType
    parameters: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "type", ActionType(self.type))

    def target_key(self) -> tuple[str, str] | None:
        """The resource this action writes to, or None if it cannot conflict."""
        if "target" in self.parameters:
            return ("target", str(self.parameters["target"]))
        target_def = _TARGETS.get(self.type)
        if target_def is None:
            return None
        namespace, id_param, _ = target_def
        if id_param is None:
            return (namespace, "active")
        target = self.parameters.get(id_param)
        return (namespace, str(target)) if target is not None else None

    def target_value(self) -> Any:
        target_def = _TARGETS.get(self.type)
        if target_def is None:
            return self.parameters.get("value")
        return self.parameters.get(target_def[2])

    def to_dict(self) -> dict:
        return {"type": self.type.value, "parameters": dict(self.parameters)}

    @classmethod
    def from_dict(cls, data: dict) -> "RuleAction":
        return cls(type=ActionType(data["type"]), parameters=dict(data.get("parameters", {})))


@dataclass(frozen=True)
class AutomationRule:
    name: str
    condition: RuleCondition
    action: RuleAction
    priority: int = 0
    confidence: float = 1.0
    enabled: bool = True
    source: RuleSource = RuleSource.MANUAL
    pattern_id: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime = field(default_factory=datetime.now)

    def signature(self) -> str:
        """Identity of what the rule does, ignoring id, name and bookkeeping."""
        raw = json.dumps(
            {"condition": self.condition.to_dict(), "action": self.action.to_dict()},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(raw.encode()).hexdigest()[:16]

    def with_enabled(self, enabled: bool) -> "AutomationRule":
        return replace(self, enabled=enabled)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "condition": self.condition.to_dict(),
            "action": self.action.to_dict(),
            "priority": self.priority,
            "confidence": self.confidence,
            "enabled": self.enabled,
            "source": self.source.value,
            "pattern_id": self.pattern_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AutomationRule":
        return cls(
            id=data["id"],
            name=data["name"],
            condition=RuleCondition.from_dict(data["condition"]),
            action=RuleAction.from_dict(data["action"]),
            priority=int(data.get("priority", 0)),
            confidence=float(data.get("confidence", 1.0)),
            enabled=bool(data.get("enabled", True)),
            source=RuleSource(data.get("source", RuleSource.MANUAL)),
            pattern_id=data.get("pattern_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class TriggerEvent:
    place_type: PlaceType
    trigger: TriggerType
    place_id: str | None = None
    place_name: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self):
        object.__setattr__(self, "place_type", PlaceType(self.place_type))
        object.__setattr__(self, "trigger", TriggerType(self.trigger))


@dataclass(frozen=True)
class ExecutionLogEntry:
    rule_id: str
    outcome: ExecutionOutcome
    trigger_id: str
    reason: str | None = None
    action_type: ActionType | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CycleOutcome:
    """What one trigger evaluation did."""

    trigger_id: str
    executed_rule_ids: tuple[str, ...] = ()
    skipped: tuple[ExecutionLogEntry, ...] = ()
    failed_rule_ids: tuple[str, ...] = ()
    phases: tuple[CyclePhase, ...] = (CyclePhase.IDLE,)

    @property
    def success(self) -> bool:
        return not self.failed_rule_ids

    @property
    def skipped_rule_ids(self) -> tuple[str, ...]:
        return tuple(e.rule_id for e in self.skipped)
