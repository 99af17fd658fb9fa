"""Signals, sub-contexts and the fused context snapshot."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from patterns.models import Pattern
from ranking.ranker import QueryContext
from records.models import Record
from shared_types import PatternType, PlaceType, SignalKind, TimeOfDay

CONTEXT_WEIGHTS = {
    "activity": 0.3,
    "time": 0.2,
    "location": 0.2,
    "emotional": 0.2,
    "system": 0.1,
}


@dataclass(frozen=True)
class Signal:
    """A single timestamped reading from one source."""

    kind: SignalKind
    value: Any
    confidence: float = 1.0
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not isinstance(self.kind, SignalKind):
            object.__setattr__(self, "kind", SignalKind(self.kind))
        object.__setattr__(self, "confidence", max(0.0, min(1.0, float(self.confidence))))


# --- Signal payloads ---


@dataclass(frozen=True)
class LocationReading:
    latitude: float | None = None
    longitude: float | None = None
    place_type: PlaceType | None = None  # None: not a registered place
    place_name: str | None = None


@dataclass(frozen=True)
class DeviceState:
    battery_percent: float
    is_charging: bool = False
    available_memory: int = 0
    cpu_percent: float = 0.0
    network_type: str | None = None
    do_not_disturb: bool = False


@dataclass(frozen=True)
class MoodReading:
    mood: str
    intensity: float = 0.5


@dataclass(frozen=True)
class CalendarEvent:
    title: str
    start: datetime
    end: datetime | None = None
    location: str | None = None


# --- Sub-contexts ---


@dataclass(frozen=True)
class TimeContext:
    now: datetime
    time_of_day: TimeOfDay
    upcoming_event: CalendarEvent | None = None
    routine_patterns: tuple[Pattern, ...] = ()
    is_usual_activity_time: bool = False
    confidence: float = 0.0

    @classmethod
    def neutral(cls, now: datetime) -> "TimeContext":
        return cls(now=now, time_of_day=TimeOfDay.from_hour(now.hour))


@dataclass(frozen=True)
class LocationContext:
    reading: LocationReading | None = None
    is_known_place: bool = False
    location_patterns: tuple[Pattern, ...] = ()
    confidence: float = 0.0

    @classmethod
    def neutral(cls) -> "LocationContext":
        return cls()

    @property
    def place_type(self) -> PlaceType | None:
        return self.reading.place_type if self.reading else None

    @property
    def label(self) -> str | None:
        if self.reading is None:
            return None
        if self.reading.place_name:
            return self.reading.place_name
        return self.reading.place_type.value if self.reading.place_type else None


@dataclass(frozen=True)
class EmotionalContext:
    current_emotion: str | None = None
    intensity: float = 0.0
    recent_emotional_records: tuple[Record, ...] = ()
    trend: str = "unknown"  # stable | shifting | unknown
    confidence: float = 0.0

    @classmethod
    def neutral(cls) -> "EmotionalContext":
        return cls()


@dataclass(frozen=True)
class SystemContext:
    state: DeviceState | None = None
    confidence: float = 0.0

    @classmethod
    def neutral(cls) -> "SystemContext":
        return cls()


@dataclass(frozen=True)
class ActivityContext:
    current_activity: str | None = None
    matching_routine: Pattern | None = None
    related_records: tuple[Record, ...] = ()
    confidence: float = 0.0

    @classmethod
    def neutral(cls) -> "ActivityContext":
        return cls()

    @property
    def is_usual_activity(self) -> bool:
        return self.matching_routine is not None


@dataclass(frozen=True)
class ContextSnapshot:
    """One fused, confidence-scored view of all signals at a point in time."""

    time: TimeContext
    location: LocationContext = field(default_factory=LocationContext.neutral)
    emotional: EmotionalContext = field(default_factory=EmotionalContext.neutral)
    system: SystemContext = field(default_factory=SystemContext.neutral)
    activity: ActivityContext = field(default_factory=ActivityContext.neutral)
    confidence: float = 0.0
    sequence: int = 0
    changed_components: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def empty(cls, now: datetime | None = None) -> "ContextSnapshot":
        now = now or datetime.now()
        return cls(time=TimeContext.neutral(now), created_at=now)

    def component(self, name: str):
        return getattr(self, name)

    @property
    def place_type(self) -> PlaceType | None:
        return self.location.place_type

    def to_query_context(self) -> QueryContext:
        routines = tuple(
            p.time_of_day
            for p in self.time.routine_patterns
            if p.type == PatternType.ROUTINE and p.time_of_day
        )
        return QueryContext(
            location=self.location.label,
            emotion=self.emotional.current_emotion,
            activity=self.activity.current_activity,
            time_of_day=self.time.time_of_day,
            routine_times=routines,
            now=self.time.now,
        )


@dataclass(frozen=True)
class ContextChange:
    previous: ContextSnapshot
    current: ContextSnapshot
    delta: float

    @property
    def changed_components(self) -> tuple[str, ...]:
        return self.current.changed_components


def aggregate_confidence(snapshot_parts: dict[str, Any]) -> float:
    """Fixed-weight sum of sub-context confidences, clipped to [0, 1]."""
    total = sum(
        weight * snapshot_parts[name].confidence
        for name, weight in CONTEXT_WEIGHTS.items()
        if name in snapshot_parts
    )
    return max(0.0, min(1.0, total))
