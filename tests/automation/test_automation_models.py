"""Tests for rule models, validation and conflict resolution."""

from dataclasses import replace
from datetime import datetime, time, timedelta

import pytest

from automation import (
    AutomationRule,
    InvalidRuleError,
    LoggingExecutor,
    RuleAction,
    RuleCondition,
    RuleValidator,
    TimeRange,
    TriggerEvent,
    enrich_message,
    resolve_conflicts,
)
from automation.executors import CapabilityUnavailableError, ExecutorRegistry
from fusion import ContextSnapshot, LocationContext, LocationReading
from shared_types import ActionType, PlaceType, TriggerType


def rule(action, priority=0, created_at=None, **kwargs):
    return AutomationRule(
        name=kwargs.pop("name", "r"),
        condition=kwargs.pop(
            "condition", RuleCondition(place_type=PlaceType.HOME, trigger=TriggerType.ENTER)
        ),
        action=action,
        priority=priority,
        created_at=created_at or datetime(2026, 1, 1),
        **kwargs,
    )


class TestTimeRange:
    def test_same_day_range_is_half_open(self):
        r = TimeRange(time(9), time(17))
        assert r.contains(time(9))
        assert r.contains(time(16, 59))
        assert not r.contains(time(17))
        assert not r.wraps_midnight

    def test_overnight_range(self):
        r = TimeRange(time(22), time(6))
        assert r.wraps_midnight
        assert r.contains(time(23, 0))
        assert r.contains(time(0, 0))
        assert r.contains(time(5, 59))
        assert not r.contains(time(6, 0))
        assert not r.contains(time(12, 0))

    def test_parse_and_dict(self):
        r = TimeRange.parse("22:30 - 06:15")
        assert r == TimeRange(time(22, 30), time(6, 15))
        assert r.to_dict() == {"start": "22:30", "end": "06:15"}
        assert TimeRange.from_dict(r.to_dict()) == r

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            TimeRange.parse("22:30")


class TestConditionMatching:
    def test_any_place_matches_scheduled(self):
        cond = RuleCondition(place_type=PlaceType.ANY, trigger=TriggerType.SCHEDULED)
        assert cond.matches_event(TriggerEvent(PlaceType.WORK, TriggerType.SCHEDULED))
        assert not cond.matches_event(TriggerEvent(PlaceType.WORK, TriggerType.ENTER))

    def test_place_and_trigger_must_match(self):
        cond = RuleCondition(place_type="home", trigger="exit")
        assert cond.matches_event(TriggerEvent("home", "exit"))
        assert not cond.matches_event(TriggerEvent("work", "exit"))

    def test_holds_at(self):
        cond = RuleCondition(
            place_type=PlaceType.HOME,
            trigger=TriggerType.ENTER,
            time_range=TimeRange(time(6), time(9)),
        )
        assert cond.holds_at(datetime(2026, 1, 1, 7, 0))
        assert not cond.holds_at(datetime(2026, 1, 1, 10, 0))

    def test_holds_in_uses_snapshot_time(self):
        cond = RuleCondition(
            place_type=PlaceType.HOME,
            trigger=TriggerType.ENTER,
            time_range=TimeRange(time(7), time(9)),
        )
        assert cond.holds_in(ContextSnapshot.empty(datetime(2026, 1, 1, 8, 0)))
        assert not cond.holds_in(ContextSnapshot.empty(datetime(2026, 1, 1, 20, 0)))

    def test_dwell_needs_snapshot_place_to_agree(self):
        cond = RuleCondition(place_type=PlaceType.HOME, trigger=TriggerType.DWELL)
        snapshot = ContextSnapshot.empty(datetime(2026, 1, 1, 8, 0))
        at_work = replace(
            snapshot, location=LocationContext(LocationReading(place_type=PlaceType.WORK))
        )
        at_home = replace(
            snapshot, location=LocationContext(LocationReading(place_type=PlaceType.HOME))
        )
        assert cond.holds_in(snapshot)
        assert cond.holds_in(at_home)
        assert not cond.holds_in(at_work)

    def test_enter_ignores_lagging_snapshot_place(self):
        cond = RuleCondition(place_type=PlaceType.HOME, trigger=TriggerType.ENTER)
        snapshot = replace(
            ContextSnapshot.empty(datetime(2026, 1, 1, 8, 0)),
            location=LocationContext(LocationReading(place_type=PlaceType.WORK)),
        )
        assert cond.holds_in(snapshot)


class TestRuleSerialization:
    def test_round_trip(self):
        original = rule(
            RuleAction(ActionType.SCENE, {"scene": "movie"}),
            priority=4,
            condition=RuleCondition(
                place_type=PlaceType.FREQUENT,
                trigger=TriggerType.DWELL,
                time_range=TimeRange(time(20), time(23)),
                place_id="cinema",
            ),
        )
        assert AutomationRule.from_dict(original.to_dict()) == original

    def test_signature_ignores_bookkeeping(self):
        action = RuleAction(ActionType.NOTIFICATION, {"message": "hi"})
        a = rule(action, priority=1, name="a")
        b = rule(action, priority=9, name="b")
        assert a.signature() == b.signature()
        other = rule(RuleAction(ActionType.NOTIFICATION, {"message": "yo"}))
        assert a.signature() != other.signature()


class TestValidator:
    def test_valid_rule(self):
        validator = RuleValidator()
        r = rule(RuleAction(ActionType.SYSTEM_SETTING, {"setting": "wifi", "value": "on"}))
        assert validator.validate(r) == []
        assert validator.check(r) is r

    @pytest.mark.parametrize(
        "action,expected",
        [
            (RuleAction(ActionType.DEVICE_CONTROL, {"device_id": "fan"}), "command"),
            (RuleAction(ActionType.NOTIFICATION, {"message": ""}), "message"),
            (RuleAction(ActionType.SCENE, {}), "scene"),
            (RuleAction(ActionType.NOTIFICATION, {"message": "x", "context": "bad"}), "mapping"),
        ],
    )
    def test_bad_parameters(self, action, expected):
        reasons = RuleValidator().validate(rule(action))
        assert any(expected in r for r in reasons)

    def test_bad_priority_and_confidence(self):
        r = rule(RuleAction(ActionType.NOTIFICATION, {"message": "x"}), priority=101, confidence=2)
        reasons = RuleValidator().validate(r)
        assert len(reasons) == 2

    @pytest.mark.parametrize(
        "field,value,expected",
        [
            ("name", None, "name must be text"),
            ("name", 7, "name must be text"),
            ("priority", "high", "priority must be an integer"),
            ("priority", True, "priority must be an integer"),
            ("confidence", "sure", "confidence must be a number"),
        ],
    )
    def test_wrong_field_types(self, field, value, expected):
        r = rule(RuleAction(ActionType.NOTIFICATION, {"message": "x"}), **{field: value})
        reasons = RuleValidator().validate(r)
        assert any(expected in reason for reason in reasons)

    def test_parameters_must_be_mapping(self):
        r = rule(RuleAction(ActionType.DEVICE_CONTROL, ["fan", "on"]))
        assert RuleValidator().validate(r) == ["action parameters must be a mapping"]

    def test_empty_time_range(self):
        r = rule(
            RuleAction(ActionType.NOTIFICATION, {"message": "x"}),
            condition=RuleCondition(
                place_type=PlaceType.HOME,
                trigger=TriggerType.ENTER,
                time_range=TimeRange(time(8), time(8)),
            ),
        )
        assert "time range is empty" in RuleValidator().validate(r)

    def test_scheduled_needs_time_range(self):
        r = rule(
            RuleAction(ActionType.NOTIFICATION, {"message": "x"}),
            condition=RuleCondition(place_type=PlaceType.ANY, trigger=TriggerType.SCHEDULED),
        )
        with pytest.raises(InvalidRuleError) as exc:
            RuleValidator().check(r)
        assert exc.value.rule_id == r.id


class TestConflicts:
    def test_notifications_never_conflict(self):
        rules = [
            rule(RuleAction(ActionType.NOTIFICATION, {"message": "a"}), priority=1),
            rule(RuleAction(ActionType.NOTIFICATION, {"message": "b"}), priority=5),
        ]
        result = resolve_conflicts(rules)
        assert result.winners == rules
        assert result.losers == []

    def test_scenes_conflict_on_active_scene(self):
        movie = rule(RuleAction(ActionType.SCENE, {"scene": "movie"}), priority=2)
        focus = rule(RuleAction(ActionType.SCENE, {"scene": "focus"}), priority=3)
        result = resolve_conflicts([movie, focus])
        assert result.winners == [focus]
        assert result.losers == [(movie, focus)]

    def test_tie_goes_to_newest(self):
        base = datetime(2026, 1, 1)
        old = rule(
            RuleAction(ActionType.SYSTEM_SETTING, {"setting": "volume", "value": 10}),
            created_at=base,
        )
        new = rule(
            RuleAction(ActionType.SYSTEM_SETTING, {"setting": "volume", "value": 80}),
            created_at=base + timedelta(days=1),
        )
        assert resolve_conflicts([old, new]).winners == [new]

    def test_explicit_target_groups_across_types(self):
        a = rule(
            RuleAction(
                ActionType.DEVICE_CONTROL, {"device_id": "x", "command": "on", "target": "speaker"}
            ),
            priority=1,
        )
        b = rule(
            RuleAction(
                ActionType.SYSTEM_SETTING, {"setting": "s", "value": "mute", "target": "speaker"}
            ),
            priority=2,
        )
        result = resolve_conflicts([a, b])
        assert result.winners == [b]

    def test_different_devices_do_not_conflict(self):
        a = rule(RuleAction(ActionType.DEVICE_CONTROL, {"device_id": "lamp", "command": "on"}))
        b = rule(RuleAction(ActionType.DEVICE_CONTROL, {"device_id": "fan", "command": "off"}))
        assert resolve_conflicts([a, b]).winners == [a, b]


class TestExecutors:
    def test_enrich_message(self):
        assert enrich_message("Hi {name}, {unknown}", {"name": "Sam"}) == "Hi Sam, {unknown}"
        assert enrich_message("plain", None) == "plain"

    def test_registry_missing_type(self):
        registry = ExecutorRegistry()
        assert ActionType.SCENE not in registry
        with pytest.raises(CapabilityUnavailableError):
            registry.get(ActionType.SCENE)

    @pytest.mark.asyncio
    async def test_logging_executor_enriches(self):
        executor = LoggingExecutor()
        action = RuleAction(
            ActionType.SPOKEN_OUTPUT,
            {"message": "Morning: {pattern}", "context": {"pattern": "run"}},
        )
        await executor.execute(action, None)
        assert executor.performed == [
            (ActionType.SPOKEN_OUTPUT, {"message": "Morning: run", "context": {"pattern": "run"}})
        ]

    def test_registry_with_logging_executors(self):
        registry = ExecutorRegistry.with_logging_executors()
        assert all(t in registry for t in ActionType)
        registry.unregister(ActionType.SCENE)
        assert ActionType.SCENE not in registry
