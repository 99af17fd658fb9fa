"""Context fusion: combine signals into one current context snapshot."""

from .builders import FusionInputs
from .hub import ContextFusionHub
from .models import (
    CONTEXT_WEIGHTS,
    ActivityContext,
    CalendarEvent,
    ContextChange,
    ContextSnapshot,
    DeviceState,
    EmotionalContext,
    LocationContext,
    LocationReading,
    MoodReading,
    Signal,
    SystemContext,
    TimeContext,
    aggregate_confidence,
)
from .sources import CallableSource, PatternSource, RecordStoreSource, SignalSource, StaticSource

__all__ = [
    "CONTEXT_WEIGHTS",
    "ActivityContext",
    "CalendarEvent",
    "CallableSource",
    "ContextChange",
    "ContextFusionHub",
    "ContextSnapshot",
    "DeviceState",
    "EmotionalContext",
    "FusionInputs",
    "LocationContext",
    "LocationReading",
    "MoodReading",
    "PatternSource",
    "RecordStoreSource",
    "Signal",
    "SignalSource",
    "StaticSource",
    "SystemContext",
    "TimeContext",
    "aggregate_confidence",
]
