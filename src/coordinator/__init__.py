"""Component wiring and background job scheduling."""

from .runtime import DecisionRuntime
from .scheduler import DecisionScheduler, PeriodicTask

__all__ = ["DecisionRuntime", "DecisionScheduler", "PeriodicTask"]
