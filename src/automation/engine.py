"""Automation decision engine: trigger in, rule evaluation and execution out."""

import asyncio
from dataclasses import replace
from typing import Iterable

import structlog

from channels import Published
from cli.retry import action_retrying, retry_settings
from observability import AnalyticsSink, emit, metrics
from records.models import Record
from records.store import PayloadStore, RecordStore
from shared_types import ExecutionOutcome, RecordType

from .conflicts import resolve_conflicts
from .executors import CapabilityUnavailableError, ExecutorRegistry
from .models import (
    AutomationRule,
    CycleOutcome,
    CyclePhase,
    ExecutionLogEntry,
    RuleSource,
    TriggerEvent,
)
from .validator import InvalidRuleError, RuleValidator

logger = structlog.get_logger()

PAYLOAD_KIND = "rule"

_SKIPPED = (ExecutionOutcome.SKIPPED_CONFLICT, ExecutionOutcome.SKIPPED_INVALID)
_FAILED = (ExecutionOutcome.FAILED, ExecutionOutcome.SKIPPED_UNAVAILABLE)


def _payload_id(payload) -> str | None:
    return payload.get("id") if isinstance(payload, dict) else None


class RuleNotFoundError(KeyError):
    """No rule with the given id."""


class AutomationEngine:
    """Evaluates rules against trigger events and runs the winners.

    The rule set is published as an immutable tuple on ``rules``; every CRUD
    call replaces it. Each trigger cycle reads one rule tuple and one context
    snapshot for its whole duration.
    """

    def __init__(
        self,
        executors: ExecutorRegistry,
        config: dict | None = None,
        analytics: AnalyticsSink | None = None,
        store: PayloadStore | None = None,
        record_store: RecordStore | None = None,
        validator: RuleValidator | None = None,
    ):
        self.executors = executors
        self.config = config or {}
        self.analytics = analytics
        self.store = store
        self.record_store = record_store
        self.validator = validator or RuleValidator(self.config)
        self.action_timeout = self.config.get("action_timeout_seconds", 10.0)
        self.record_executions = self.config.get("record_executions", True)
        self.retry = retry_settings(self.config)

        self.rules: Published[tuple[AutomationRule, ...]] = Published((), name="automation_rules")
        self._log: list[ExecutionLogEntry] = []
        self._invalid: set[str] = set()
        self._rule_locks: dict[str, asyncio.Lock] = {}

    # --- Rule management ---

    def load(self) -> tuple[AutomationRule, ...]:
        """Restore persisted rules, if a store is configured."""
        if self.store is None:
            return self.rules.value
        restored = []
        for payload in self.store.all(PAYLOAD_KIND):
            try:
                restored.append(AutomationRule.from_dict(payload))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(
                    "rule_restore_skipped", rule_id=_payload_id(payload), error=str(e)
                )
        self.rules.publish(tuple(restored))
        logger.info("rules_loaded", count=len(restored))
        return self.rules.value

    def list_rules(self, enabled_only: bool = False) -> tuple[AutomationRule, ...]:
        rules = self.rules.value
        return tuple(r for r in rules if r.enabled) if enabled_only else rules

    def get_rule(self, rule_id: str) -> AutomationRule:
        for rule in self.rules.value:
            if rule.id == rule_id:
                return rule
        raise RuleNotFoundError(rule_id)

    def add_rule(self, rule: AutomationRule) -> AutomationRule:
        self.validator.check(rule)
        if any(r.id == rule.id for r in self.rules.value):
            raise ValueError(f"rule {rule.id} already exists")
        self._publish(self.rules.value + (rule,))
        logger.info("rule_added", rule_id=rule.id, action_type=rule.action.type.value)
        emit(
            self.analytics,
            "automation_rule_added",
            trigger=rule.condition.trigger.value,
            action=rule.action.type.value,
        )
        return rule

    def update_rule(self, rule: AutomationRule) -> AutomationRule:
        self.validator.check(rule)
        self.get_rule(rule.id)
        self._publish(tuple(rule if r.id == rule.id else r for r in self.rules.value))
        self._invalid.discard(rule.id)
        logger.info("rule_updated", rule_id=rule.id)
        return rule

    def enable_rule(self, rule_id: str) -> AutomationRule:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> AutomationRule:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> AutomationRule:
        rule = self.get_rule(rule_id).with_enabled(enabled)
        self._publish(tuple(rule if r.id == rule_id else r for r in self.rules.value))
        logger.info("rule_enabled" if enabled else "rule_disabled", rule_id=rule_id)
        return rule

    def remove_rule(self, rule_id: str) -> AutomationRule:
        rule = self.get_rule(rule_id)
        self._publish(tuple(r for r in self.rules.value if r.id != rule_id))
        self._invalid.discard(rule_id)
        self._rule_locks.pop(rule_id, None)
        logger.info("rule_removed", rule_id=rule_id)
        return rule

    def replace_generated_rules(
        self, generated: Iterable[AutomationRule]
    ) -> tuple[AutomationRule, ...]:
        """Swap the generated subset of the rule set, keeping manual rules.

        A previously generated rule with the same signature as a new one is
        kept (with its id, enabled flag and creation time).
        """
        current = self.rules.value
        manual = [r for r in current if r.source != RuleSource.GENERATED]
        previous = {r.signature(): r for r in current if r.source == RuleSource.GENERATED}

        kept = []
        for rule in generated:
            old = previous.get(rule.signature())
            if old is not None:
                kept.append(replace(old, confidence=rule.confidence, pattern_id=rule.pattern_id))
            elif not self.validator.validate(rule):
                kept.append(rule)
            else:
                logger.warning("generated_rule_invalid", pattern_id=rule.pattern_id)
        self._publish(tuple(manual + kept))
        logger.info("generated_rules_replaced", manual=len(manual), generated=len(kept))
        return self.rules.value

    def _publish(self, rules: tuple[AutomationRule, ...]) -> None:
        self.rules.publish(rules)
        if self.store is not None:
            self.store.replace_all(PAYLOAD_KIND, {r.id: r.to_dict() for r in rules})

    @property
    def execution_log(self) -> tuple[ExecutionLogEntry, ...]:
        return tuple(self._log)

    @property
    def invalid_rule_ids(self) -> frozenset[str]:
        return frozenset(self._invalid)

    # --- Trigger evaluation ---

    async def handle_trigger(self, event: TriggerEvent, snapshot=None) -> CycleOutcome:
        """Run one IDLE -> EVALUATING -> EXECUTING|SKIPPED -> IDLE cycle. Never raises."""
        phases = [CyclePhase.IDLE, CyclePhase.EVALUATING]
        rules = self.rules.value
        log = logger.bind(
            trigger_id=event.id,
            place_type=event.place_type.value,
            trigger=event.trigger.value,
        )

        matched = []
        entries: list[ExecutionLogEntry] = []
        candidates = []
        for rule in rules:
            try:
                if not (rule.enabled and rule.condition.matches_event(event)):
                    continue
                matched.append(rule)
                reasons = self.validator.validate(rule)
                holds = not reasons and self._condition_holds(rule, event, snapshot)
            except Exception as e:
                reasons = [f"evaluation failed: {type(e).__name__}: {e}"]
            if reasons:
                self._invalid.add(rule.id)
                entries.append(self._entry(rule, ExecutionOutcome.SKIPPED_INVALID, event, reasons))
                log.warning("rule_invalid", rule_id=rule.id, reasons=reasons)
                continue
            if holds:
                candidates.append(rule)

        resolution = resolve_conflicts(candidates)
        for loser, winner in resolution.losers:
            reason = f"conflicts with {winner.id} (priority {winner.priority})"
            entries.append(self._entry(loser, ExecutionOutcome.SKIPPED_CONFLICT, event, reason))
            log.info("rule_conflict_skipped", rule_id=loser.id, winner_id=winner.id)

        if resolution.winners:
            phases.append(CyclePhase.EXECUTING)
            results = await asyncio.gather(
                *(self._execute_rule(rule, event, snapshot) for rule in resolution.winners)
            )
            entries.extend(results)
        else:
            phases.append(CyclePhase.SKIPPED)
        phases.append(CyclePhase.IDLE)

        self._log.extend(entries)
        outcome = CycleOutcome(
            trigger_id=event.id,
            executed_rule_ids=tuple(
                e.rule_id for e in entries if e.outcome == ExecutionOutcome.SUCCESS
            ),
            skipped=tuple(e for e in entries if e.outcome in _SKIPPED),
            failed_rule_ids=tuple(e.rule_id for e in entries if e.outcome in _FAILED),
            phases=tuple(phases),
        )

        metrics.counter("automation.triggers")
        log.info(
            "automation_cycle_complete",
            matched=len(matched),
            executed=len(outcome.executed_rule_ids),
            skipped=len(outcome.skipped),
            failed=len(outcome.failed_rule_ids),
        )
        emit(
            self.analytics,
            "automation_executed",
            location_type=event.place_type.value,
            trigger_type=event.trigger.value,
            rules_executed=len(outcome.executed_rule_ids),
            success=outcome.success,
        )
        self._record_execution(event)
        return outcome

    @staticmethod
    def _condition_holds(rule: AutomationRule, event: TriggerEvent, snapshot) -> bool:
        """Check the rule's condition against the cycle's snapshot, or the event without one."""
        if snapshot is None:
            return rule.condition.holds_at(event.timestamp)
        return rule.condition.holds_in(snapshot)

    async def _execute_rule(
        self, rule: AutomationRule, event: TriggerEvent, snapshot
    ) -> ExecutionLogEntry:
        lock = self._rule_locks.setdefault(rule.id, asyncio.Lock())
        async with lock:
            log = logger.bind(
                rule_id=rule.id, action_type=rule.action.type.value, trigger_id=event.id
            )
            try:
                executor = self.executors.get(rule.action.type)
            except CapabilityUnavailableError as e:
                log.warning("action_executor_unavailable", error=str(e))
                return self._entry(rule, ExecutionOutcome.SKIPPED_UNAVAILABLE, event, str(e))

            try:
                async for attempt in action_retrying(
                    **self.retry, no_retry=(CapabilityUnavailableError, InvalidRuleError)
                ):
                    with attempt:
                        await asyncio.wait_for(
                            executor.execute(rule.action, snapshot), timeout=self.action_timeout
                        )
            except Exception as e:
                reason = str(e) or type(e).__name__
                log.error("action_failed", error=reason)
                metrics.counter("automation.action_failure")
                return self._entry(rule, ExecutionOutcome.FAILED, event, reason)

            log.info("rule_executed")
            metrics.counter("automation.action_success")
            return self._entry(rule, ExecutionOutcome.SUCCESS, event)

    @staticmethod
    def _entry(
        rule: AutomationRule,
        outcome: ExecutionOutcome,
        event: TriggerEvent,
        reason: str | list[str] | None = None,
    ) -> ExecutionLogEntry:
        if isinstance(reason, list):
            reason = "; ".join(reason)
        return ExecutionLogEntry(
            rule_id=rule.id,
            outcome=outcome,
            trigger_id=event.id,
            reason=reason,
            action_type=getattr(rule.action, "type", None),
        )

    def _record_execution(self, event: TriggerEvent) -> None:
        if self.record_store is None or not self.record_executions:
            return
        place = event.place_name or event.place_type.value
        record = Record(
            content=f"Executed {event.trigger.value} automation at {place}",
            type=RecordType.AUTOMATION,
            importance=2,
            tags=("automation", event.place_type.value, event.trigger.value),
        )
        try:
            self.record_store.append(record)
        except Exception as e:
            logger.warning("automation_record_failed", trigger_id=event.id, error=str(e))
