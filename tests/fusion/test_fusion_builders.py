"""Tests for the individual sub-context builders."""

from datetime import timedelta

import pytest

from fusion import CalendarEvent, FusionInputs, LocationReading, MoodReading, Signal
from fusion.builders import build_emotional, build_location, build_system, build_time
from patterns import Pattern
from shared_types import PatternType, PlaceType, RecordType, SignalKind, TimeOfDay


def inputs(now, *signals, **kwargs):
    return FusionInputs(signals={s.kind: s for s in signals}, now=now, **kwargs)


class TestBuildTime:
    def test_neutral_without_sources(self, now):
        ctx = build_time(inputs(now))
        assert ctx.confidence == 0.0
        assert ctx.time_of_day == TimeOfDay.MORNING

    def test_upcoming_event_picked(self, now):
        events = [
            CalendarEvent("Past standup", start=now - timedelta(hours=1)),
            CalendarEvent("Dentist", start=now + timedelta(hours=3)),
            CalendarEvent("Lunch", start=now + timedelta(hours=4)),
        ]
        ctx = build_time(inputs(now, Signal(SignalKind.CALENDAR, events, confidence=0.9)))
        assert ctx.upcoming_event.title == "Dentist"
        assert ctx.confidence == pytest.approx(0.9 * 0.8)

    def test_time_signal_overrides_clock(self, now):
        evening = now.replace(hour=19)
        ctx = build_time(inputs(now, Signal(SignalKind.TIME, evening)))
        assert ctx.time_of_day == TimeOfDay.EVENING
        assert ctx.now == evening


class TestBuildLocation:
    def test_registered_place_is_known(self, now):
        reading = LocationReading(51.5, -0.1, place_type=PlaceType.HOME)
        ctx = build_location(inputs(now, Signal(SignalKind.LOCATION, reading)))
        assert ctx.is_known_place
        assert ctx.confidence == 1.0
        assert ctx.label == "home"

    def test_unknown_place_discounted(self, now):
        reading = LocationReading(51.5, -0.1, place_name="Somewhere")
        ctx = build_location(inputs(now, Signal(SignalKind.LOCATION, reading)))
        assert not ctx.is_known_place
        assert ctx.confidence == pytest.approx(0.6)

    def test_known_places_and_patterns(self, now):
        reading = LocationReading(place_name="gym")
        pattern = Pattern(
            type=PatternType.HABIT, description="lifting", confidence=0.8, location="gym"
        )
        ctx = build_location(
            inputs(
                now,
                Signal(SignalKind.LOCATION, reading),
                known_places=frozenset({"gym"}),
                patterns=(pattern,),
            )
        )
        assert ctx.is_known_place
        assert ctx.location_patterns == (pattern,)

    def test_wrong_payload_is_neutral(self, now):
        ctx = build_location(inputs(now, Signal(SignalKind.LOCATION, "51.5,-0.1")))
        assert ctx.confidence == 0.0


class TestBuildEmotional:
    def test_stable_trend_boosts_confidence(self, now, make_record):
        history = tuple(
            make_record("felt calm", days_ago=d, record_type=RecordType.EMOTIONAL, emotion="calm")
            for d in (1, 2, 3)
        )
        ctx = build_emotional(
            inputs(now, Signal(SignalKind.MOOD, MoodReading("calm")), records=history)
        )
        assert ctx.trend == "stable"
        assert ctx.confidence == pytest.approx(1.0)
        assert len(ctx.recent_emotional_records) == 3

    def test_shifting_trend(self, now, make_record):
        history = (
            make_record("rough day", record_type=RecordType.EMOTIONAL, emotion="stressed"),
        )
        ctx = build_emotional(
            inputs(now, Signal(SignalKind.MOOD, MoodReading("happy")), records=history)
        )
        assert ctx.trend == "shifting"
        assert ctx.confidence == pytest.approx(0.7)

    def test_no_mood_is_neutral(self, now):
        assert build_emotional(inputs(now)).current_emotion is None


class TestBuildSystem:
    def test_missing_device_state(self, now):
        assert build_system(inputs(now)).state is None
