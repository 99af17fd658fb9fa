"""Shared enums and types for the context engine."""

from enum import StrEnum


class ProcessingMode(StrEnum):
    LIGHTWEIGHT = "lightweight"
    HYBRID = "hybrid"
    FULL = "full"

    @property
    def level(self) -> int:
        """Cost ordering: LIGHTWEIGHT < HYBRID < FULL."""
        return _MODE_LEVELS[self]


_MODE_LEVELS = {
    ProcessingMode.LIGHTWEIGHT: 0,
    ProcessingMode.HYBRID: 1,
    ProcessingMode.FULL: 2,
}


class PerformancePreference(StrEnum):
    BATTERY_SAVER = "battery_saver"
    BALANCED = "balanced"
    MAX_PERFORMANCE = "max_performance"


class Capability(StrEnum):
    EMBEDDING = "embedding"
    NLU = "nlu"


class SignalKind(StrEnum):
    LOCATION = "location"
    TIME = "time"
    DEVICE_STATE = "device_state"
    MOOD = "mood"
    CALENDAR = "calendar"
    PATTERNS = "patterns"
    RECORDS = "records"


class TimeOfDay(StrEnum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @classmethod
    def from_hour(cls, hour: int) -> "TimeOfDay":
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        if 17 <= hour < 22:
            return cls.EVENING
        return cls.NIGHT


class PatternType(StrEnum):
    ROUTINE = "routine"
    PREFERENCE = "preference"
    HABIT = "habit"
    SOCIAL = "social"


class RecordType(StrEnum):
    CONVERSATION = "conversation"
    PREFERENCE = "preference"
    ROUTINE = "routine"
    EMOTIONAL = "emotional"
    EVENT = "event"
    SOCIAL = "social"
    AUTOMATION = "automation"
    NOTE = "note"


class PlaceType(StrEnum):
    HOME = "home"
    WORK = "work"
    FREQUENT = "frequent"
    ANY = "any"


class TriggerType(StrEnum):
    ENTER = "enter"
    EXIT = "exit"
    DWELL = "dwell"
    SCHEDULED = "scheduled"


class ActionType(StrEnum):
    DEVICE_CONTROL = "device_control"
    NOTIFICATION = "notification"
    SCENE = "scene"
    SPOKEN_OUTPUT = "spoken_output"
    SYSTEM_SETTING = "system_setting"


class ExecutionOutcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED_CONFLICT = "skipped_conflict"
    SKIPPED_INVALID = "skipped_invalid"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
