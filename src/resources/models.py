"""Resource telemetry models and per-capability floors."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from shared_types import Capability, ProcessingMode

MB = 1_000_000


@dataclass(frozen=True)
class ResourceBudget:
    battery_percent: float
    available_memory: int  # bytes
    cpu_percent: float
    temperature_c: float
    sampled_at: datetime = field(default_factory=datetime.now)

    def describe(self) -> str:
        return (
            f"battery={self.battery_percent:.0f}% "
            f"memory={self.available_memory // MB}MB "
            f"cpu={self.cpu_percent:.0f}% "
            f"temp={self.temperature_c:.1f}C"
        )


@dataclass(frozen=True)
class CapabilityRequirements:
    min_memory: int
    min_battery: float
    max_cpu: float
    max_temperature: float

    def unmet(self, budget: ResourceBudget) -> list[str]:
        """Names of the floors/ceilings this budget violates."""
        reasons = []
        if budget.available_memory < self.min_memory:
            reasons.append("memory")
        if budget.battery_percent < self.min_battery:
            reasons.append("battery")
        if budget.cpu_percent > self.max_cpu:
            reasons.append("cpu")
        if budget.temperature_c > self.max_temperature:
            reasons.append("temperature")
        return reasons


DEFAULT_REQUIREMENTS = {
    Capability.EMBEDDING: CapabilityRequirements(
        min_memory=100 * MB, min_battery=20, max_cpu=70, max_temperature=40.0
    ),
    Capability.NLU: CapabilityRequirements(
        min_memory=150 * MB, min_battery=30, max_cpu=60, max_temperature=38.0
    ),
}


@dataclass(frozen=True)
class ModeTransition:
    previous: ProcessingMode
    current: ProcessingMode
    score: float | None
    reason: str
    at: datetime = field(default_factory=datetime.now)


class TelemetryProvider(Protocol):
    async def sample(self) -> ResourceBudget: ...


class StaticTelemetry:
    """Telemetry provider returning a fixed (settable) budget."""

    def __init__(self, budget: ResourceBudget):
        self.budget = budget

    async def sample(self) -> ResourceBudget:
        return self.budget
