"""Sub-context builders. Each reads one FusionInputs and returns one sub-context."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from patterns.models import Pattern
from ranking.ranker import QueryContext, RelevanceRanker
from records.models import Record
from shared_types import PatternType, RecordType, SignalKind, TimeOfDay

from .models import (
    ActivityContext,
    CalendarEvent,
    DeviceState,
    EmotionalContext,
    LocationContext,
    LocationReading,
    MoodReading,
    Signal,
    SystemContext,
    TimeContext,
)


@dataclass(frozen=True)
class FusionInputs:
    """Immutable copy of everything one fusion cycle may read."""

    signals: dict[SignalKind, Signal]
    now: datetime
    patterns: tuple[Pattern, ...] = ()
    records: tuple[Record, ...] = ()
    known_places: frozenset[str] = field(default_factory=frozenset)

    def get(self, kind: SignalKind) -> Signal | None:
        return self.signals.get(kind)


def _as_tuple(value) -> tuple:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def typed_items(signal: Signal | None, item_type: type) -> tuple:
    """The signal's value as a tuple, keeping only items of ``item_type``."""
    if signal is None:
        return ()
    return tuple(v for v in _as_tuple(signal.value) if isinstance(v, item_type))


def build_time(inputs: FusionInputs) -> TimeContext:
    signal = inputs.get(SignalKind.TIME)
    now = signal.value if signal and isinstance(signal.value, datetime) else inputs.now
    time_of_day = TimeOfDay.from_hour(now.hour)

    calendar = inputs.get(SignalKind.CALENDAR)
    events: tuple[CalendarEvent, ...] = _as_tuple(calendar.value) if calendar else ()
    upcoming = sorted((e for e in events if e.start > now), key=lambda e: e.start)
    upcoming_event = upcoming[0] if upcoming else None

    routines = tuple(p for p in inputs.patterns if p.type == PatternType.ROUTINE)
    usual = any(p.time_of_day == time_of_day for p in routines)

    sources = [s for s in (signal, calendar) if s is not None]
    if not sources and not routines:
        return TimeContext.neutral(now)
    base = max((s.confidence for s in sources), default=0.6)
    confidence = base * (
        0.6 + (0.2 if upcoming_event else 0.0) + (0.2 if routines else 0.0)
    )
    return TimeContext(
        now=now,
        time_of_day=time_of_day,
        upcoming_event=upcoming_event,
        routine_patterns=routines,
        is_usual_activity_time=usual,
        confidence=confidence,
    )


def build_location(inputs: FusionInputs) -> LocationContext:
    signal = inputs.get(SignalKind.LOCATION)
    if signal is None or not isinstance(signal.value, LocationReading):
        return LocationContext.neutral()
    reading = signal.value
    known = reading.place_type is not None or (
        reading.place_name is not None and reading.place_name in inputs.known_places
    )
    label = reading.place_name or (reading.place_type.value if reading.place_type else None)
    location_patterns = tuple(
        p for p in inputs.patterns if p.location and label and p.location == label
    )
    return LocationContext(
        reading=reading,
        is_known_place=known,
        location_patterns=location_patterns,
        confidence=signal.confidence * (1.0 if known else 0.6),
    )


def build_emotional(inputs: FusionInputs) -> EmotionalContext:
    signal = inputs.get(SignalKind.MOOD)
    recent = tuple(
        sorted(
            (r for r in inputs.records if r.type == RecordType.EMOTIONAL),
            key=lambda r: r.timestamp,
        )[-5:]
    )
    if signal is None or not isinstance(signal.value, MoodReading):
        return EmotionalContext.neutral()

    mood = signal.value
    past = [r.context_value("emotion") for r in recent if r.context_value("emotion")]
    if not past:
        trend = "unknown"
    else:
        usual = Counter(past).most_common(1)[0][0]
        trend = "stable" if usual == mood.mood else "shifting"
    agreement = 0.3 if trend == "stable" else 0.0
    return EmotionalContext(
        current_emotion=mood.mood,
        intensity=mood.intensity,
        recent_emotional_records=recent,
        trend=trend,
        confidence=signal.confidence * (0.7 + agreement),
    )


def build_system(inputs: FusionInputs) -> SystemContext:
    signal = inputs.get(SignalKind.DEVICE_STATE)
    if signal is None or not isinstance(signal.value, DeviceState):
        return SystemContext.neutral()
    # Device state is read directly, so it is as good as the reading
    return SystemContext(state=signal.value, confidence=signal.confidence)


async def build_activity(
    inputs: FusionInputs,
    ranker: RelevanceRanker | None = None,
    use_semantic: bool = False,
    related_limit: int = 3,
) -> ActivityContext:
    time_of_day = TimeOfDay.from_hour(inputs.now.hour)
    routine = next(
        (
            p
            for p in sorted(inputs.patterns, key=lambda p: p.confidence, reverse=True)
            if p.type == PatternType.ROUTINE and p.time_of_day == time_of_day
        ),
        None,
    )

    activity = None
    confidence = 0.0
    if routine is not None:
        activity = routine.description
        confidence = 0.9 * routine.confidence
    else:
        recent = sorted(
            (r for r in inputs.records if r.context_value("activity")),
            key=lambda r: r.timestamp,
            reverse=True,
        )
        if recent:
            activity = recent[0].context_value("activity")
            confidence = 0.6

    if activity is None:
        return ActivityContext.neutral()

    related: tuple[Record, ...] = ()
    if ranker is not None and inputs.records:
        query_context = QueryContext(activity=activity, time_of_day=time_of_day, now=inputs.now)
        ranked = await ranker.rank(
            activity,
            inputs.records,
            query_context,
            limit=related_limit,
            use_semantic=use_semantic,
            min_score=0.0,
        )
        related = tuple(ranked)

    return ActivityContext(
        current_activity=activity,
        matching_routine=routine,
        related_records=related,
        confidence=confidence,
    )
