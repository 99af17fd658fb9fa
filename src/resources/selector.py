"""Resource-aware processing mode selection."""

import structlog

from channels import Broadcast
from observability import AnalyticsSink, emit, metrics
from shared_types import Capability, PerformancePreference, ProcessingMode

from .models import (
    DEFAULT_REQUIREMENTS,
    MB,
    CapabilityRequirements,
    ModeTransition,
    ResourceBudget,
    TelemetryProvider,
)

logger = structlog.get_logger()

DEFAULT_WEIGHTS = {"battery": 0.4, "memory": 0.3, "cpu": 0.2, "temperature": 0.1}


def _clip(value: float) -> float:
    return max(-1.0, min(1.0, value))


def score_terms(budget: ResourceBudget, config: dict | None = None) -> dict[str, float]:
    """Each term is ~[-1, 1]; positive means the resource is abundant."""
    cfg = config or {}
    battery_mid = cfg.get("battery_midpoint", 50.0)
    memory_thr = cfg.get("memory_threshold_mb", 200) * MB
    cpu_thr = cfg.get("cpu_threshold", 80.0)
    temp_thr = cfg.get("temperature_threshold", 45.0)
    return {
        "battery": _clip((budget.battery_percent - battery_mid) / battery_mid),
        "memory": _clip((budget.available_memory - memory_thr) / memory_thr),
        "cpu": _clip(1.0 - budget.cpu_percent / cpu_thr),
        "temperature": _clip(1.0 - budget.temperature_c / temp_thr),
    }


def resource_score(budget: ResourceBudget, config: dict | None = None) -> float:
    cfg = config or {}
    weights = {**DEFAULT_WEIGHTS, **cfg.get("weights", {})}
    terms = score_terms(budget, cfg)
    return sum(weights[name] * value for name, value in terms.items())


def mode_for_score(score: float, config: dict | None = None) -> ProcessingMode:
    cfg = config or {}
    if score > cfg.get("full_above", 0.5):
        return ProcessingMode.FULL
    if score > cfg.get("hybrid_above", 0.0):
        return ProcessingMode.HYBRID
    return ProcessingMode.LIGHTWEIGHT


_PREFERENCE_OVERRIDES = {
    PerformancePreference.BATTERY_SAVER: ProcessingMode.LIGHTWEIGHT,
    PerformancePreference.MAX_PERFORMANCE: ProcessingMode.FULL,
}


def determine_mode(
    budget: ResourceBudget,
    preference: PerformancePreference = PerformancePreference.BALANCED,
    config: dict | None = None,
) -> ProcessingMode:
    """Preference overrides win before any scoring happens."""
    forced = _PREFERENCE_OVERRIDES.get(preference)
    if forced is not None:
        return forced
    return mode_for_score(resource_score(budget, config), config)


class ResourceModeSelector:
    """Samples telemetry, keeps the current mode cached, publishes transitions.

    Downstream components read current_mode() (cheap, no telemetry call) or
    subscribe to `transitions`.
    """

    def __init__(
        self,
        telemetry: TelemetryProvider,
        config: dict | None = None,
        analytics: AnalyticsSink | None = None,
        preference: PerformancePreference = PerformancePreference.BALANCED,
        initial_mode: ProcessingMode = ProcessingMode.HYBRID,
    ):
        self.telemetry = telemetry
        self.config = config or {}
        self.analytics = analytics
        self.preference = PerformancePreference(self.config.get("preference", preference))
        self.requirements: dict[Capability, CapabilityRequirements] = dict(DEFAULT_REQUIREMENTS)
        for name, req in self.config.get("requirements", {}).items():
            req = dict(req)
            if "min_memory_mb" in req:
                req["min_memory"] = int(req.pop("min_memory_mb") * MB)
            self.requirements[Capability(name)] = CapabilityRequirements(**req)
        self.transitions: Broadcast[ModeTransition] = Broadcast(name="mode_transitions")
        self._mode = initial_mode
        self._last_score: float | None = None
        self._last_budget: ResourceBudget | None = None

    def current_mode(self) -> ProcessingMode:
        return self._mode

    @property
    def last_score(self) -> float | None:
        return self._last_score

    @property
    def last_budget(self) -> ResourceBudget | None:
        return self._last_budget

    def set_preference(self, preference: PerformancePreference) -> ProcessingMode:
        """Apply a user override immediately, using the last sampled budget if any."""
        self.preference = PerformancePreference(preference)
        if self._last_budget is not None:
            return self._apply(self._last_budget, reason="preference_changed")
        forced = _PREFERENCE_OVERRIDES.get(self.preference)
        if forced is not None:
            self._transition(forced, None, "preference_changed")
        return self._mode

    async def refresh(self) -> ProcessingMode:
        """Sample telemetry once and update the mode."""
        try:
            budget = await self.telemetry.sample()
        except Exception as e:
            # Unknown resources are treated as exhausted
            logger.warning("resource_telemetry_failed", error=str(e))
            metrics.counter("resources.telemetry_failure")
            self._last_budget = None
            self._last_score = None
            self._transition(ProcessingMode.LIGHTWEIGHT, None, f"telemetry_failed: {e}")
            return self._mode
        return self._apply(budget, reason=budget.describe())

    def _apply(self, budget: ResourceBudget, reason: str) -> ProcessingMode:
        self._last_budget = budget
        self._last_score = resource_score(budget, self.config)
        metrics.gauge("resources.score", self._last_score)
        self._check_thresholds(budget)
        new_mode = determine_mode(budget, self.preference, self.config)
        self._transition(new_mode, self._last_score, reason)
        return self._mode

    def _transition(self, new_mode: ProcessingMode, score: float | None, reason: str) -> None:
        if new_mode == self._mode:
            return
        event = ModeTransition(previous=self._mode, current=new_mode, score=score, reason=reason)
        self._mode = new_mode
        self.transitions.send(event)
        logger.info(
            "processing_mode_changed",
            previous=event.previous.value,
            mode=new_mode.value,
            score=round(score, 3) if score is not None else None,
            reason=reason,
        )
        emit(self.analytics, "processing_mode_changed", new_mode=new_mode.value, reason=reason)

    def _check_thresholds(self, budget: ResourceBudget) -> None:
        warn = self.config.get("warnings", {})
        if budget.battery_percent < warn.get("battery_below", 15):
            emit(self.analytics, "battery_warning", level=budget.battery_percent)
        if budget.cpu_percent > warn.get("cpu_above", 80):
            emit(self.analytics, "cpu_warning", usage=budget.cpu_percent)
        if budget.available_memory < warn.get("memory_below_mb", 200) * MB:
            emit(self.analytics, "memory_warning", available=budget.available_memory)

    async def should_use_expensive_path(
        self, capability: Capability, budget: ResourceBudget | None = None
    ) -> bool:
        """Global mode first; in HYBRID the capability's own floors must also hold."""
        mode = self._mode
        if mode == ProcessingMode.FULL:
            return True
        if mode == ProcessingMode.LIGHTWEIGHT:
            return False

        if budget is None:
            try:
                budget = await self.telemetry.sample()
            except Exception as e:
                logger.warning(
                    "capability_check_telemetry_failed",
                    capability=capability.value,
                    error=str(e),
                )
                return False

        requirements = self.requirements.get(Capability(capability))
        if requirements is None:
            return False
        unmet = requirements.unmet(budget)
        if unmet:
            logger.debug("capability_floor_unmet", capability=capability.value, unmet=unmet)
            return False
        return True
